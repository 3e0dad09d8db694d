# winmatrix_matrix.py
# Windows test matrix for the oniguruma bindings, one entry per CI cell.
from __future__ import annotations

from winmatrix.dsl import m, cell, disabled

INSTALL = [
    "git submodule update --init",
    r"powershell -NoProfile -ExecutionPolicy Bypass -File .\appveyor_rust_install.ps1",
]

GLOBAL_ENV = {"RUSTONIG_STATIC_LIBONIG": "1"}


def matrix():
    return m(
        # MSVC: stable only, beta/nightly not supported yet
        cell("stable", "x86_64-pc-windows-msvc", "msvc", 64),
        cell("stable", "i686-pc-windows-msvc", "msvc", 32),
        disabled("beta", "x86_64-pc-windows-msvc", "msvc"),
        disabled("beta", "i686-pc-windows-msvc", "msvc"),
        disabled("nightly", "x86_64-pc-windows-msvc", "msvc"),
        disabled("nightly", "i686-pc-windows-msvc", "msvc"),

        # GNU toolchains via MSYS2, descriptor-style entries also work
        {"channel": "stable", "target": "x86_64-pc-windows-gnu", "TOOLCHAIN": "msys", "MSYS_BITS": 64},
        {"channel": "stable", "target": "i686-pc-windows-gnu", "TOOLCHAIN": "msys", "MSYS_BITS": 32},
        {"channel": "beta", "target": "x86_64-pc-windows-gnu", "TOOLCHAIN": "msys", "MSYS_BITS": 64},
        {"channel": "beta", "target": "i686-pc-windows-gnu", "TOOLCHAIN": "msys", "MSYS_BITS": 32},
        {"channel": "nightly", "target": "x86_64-pc-windows-gnu", "TOOLCHAIN": "msys", "MSYS_BITS": 64},
        {"channel": "nightly", "target": "i686-pc-windows-gnu", "TOOLCHAIN": "msys"},
    )
