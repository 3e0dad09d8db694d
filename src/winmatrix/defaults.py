from __future__ import annotations

from typing import List

from .dsl import cell, disabled, matrix
from .model import MatrixCell


INSTALL = [
    "git submodule update --init",
    r"powershell -NoProfile -ExecutionPolicy Bypass -File .\appveyor_rust_install.ps1",
]


def default_matrix() -> List[MatrixCell]:
    """Windows matrix for the oniguruma bindings: MSVC on stable only, GNU on every channel."""
    return matrix(
        # MSVC
        cell("stable", "x86_64-pc-windows-msvc", "msvc", 64),
        cell("stable", "i686-pc-windows-msvc", "msvc", 32),
        disabled("beta", "x86_64-pc-windows-msvc", "msvc", 64),
        disabled("beta", "i686-pc-windows-msvc", "msvc", 32),
        disabled("nightly", "x86_64-pc-windows-msvc", "msvc", 64),
        disabled("nightly", "i686-pc-windows-msvc", "msvc", 32),

        # GNU (MSYS2 / MinGW)
        cell("stable", "x86_64-pc-windows-gnu", "gnu-msys", 64),
        cell("stable", "i686-pc-windows-gnu", "gnu-msys", 32),
        cell("beta", "x86_64-pc-windows-gnu", "gnu-msys", 64),
        cell("beta", "i686-pc-windows-gnu", "gnu-msys", 32),
        cell("nightly", "x86_64-pc-windows-gnu", "gnu-msys", 64),
        cell("nightly", "i686-pc-windows-gnu", "gnu-msys"),
    )
