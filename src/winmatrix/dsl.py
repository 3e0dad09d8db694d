# src/winmatrix/dsl.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from .model import ConfigurationError, MatrixCell


# ---------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------

def cell(
    channel: str,
    target: str,
    toolchain: str,
    bits: Optional[int] = None,
    *,
    enabled: bool = True,
) -> MatrixCell:
    """
    Declare one matrix cell.

    When `bits` is omitted it is taken from the target triple's
    architecture (i686 -> 32, x86_64 -> 64).
    """
    if bits is None:
        bits = bits_from_target(target)
    return MatrixCell(
        channel=channel,
        target=target,
        toolchain=toolchain,
        platform_bits=_as_bits(bits, "bits"),
        enabled=enabled,
    )


def disabled(channel: str, target: str, toolchain: str, bits: Optional[int] = None) -> MatrixCell:
    """Declare a cell that is kept in the matrix file but never run."""
    return cell(channel, target, toolchain, bits, enabled=False)


def matrix(*cells: Union[MatrixCell, Mapping[str, Any]]) -> List[MatrixCell]:
    """
    Matrix definition helper.

        def matrix():
            return m(
                cell("stable", "x86_64-pc-windows-msvc", "msvc", 64),
                disabled("beta", "x86_64-pc-windows-msvc", "msvc"),
            )
    """
    return [to_cell(c) for c in cells]


m = matrix  # short alias for matrix files that define their own matrix()


# ---------------------------------------------------------------------
# Descriptor-style entries
# ---------------------------------------------------------------------

_ARCH_BITS = {"i686": 32, "i586": 32, "x86": 32, "x86_64": 64, "amd64": 64}

# TOOLCHAIN value in a descriptor entry -> toolchain family
_TOOLCHAIN_ALIASES = {
    "msvc": "msvc",
    "msys": "gnu-msys",
    "gnu-msys": "gnu-msys",
    "gnu": "gnu-msys",
}


def bits_from_target(target: str) -> int:
    arch = target.split("-", 1)[0]
    try:
        return _ARCH_BITS[arch]
    except KeyError:
        raise ConfigurationError(
            f"Cannot infer platform bits from target {target!r} (arch {arch!r})"
        ) from None


def _toolchain_from_target(target: str) -> str:
    if target.endswith("-msvc"):
        return "msvc"
    if target.endswith("-gnu"):
        return "gnu-msys"
    raise ConfigurationError(f"Cannot infer toolchain from target {target!r}")


def _as_bits(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from None


def to_cell(entry: Union[MatrixCell, Mapping[str, Any]]) -> MatrixCell:
    """
    Accept a MatrixCell or a descriptor-style mapping:

        {"channel": "stable", "target": "x86_64-pc-windows-gnu",
         "TOOLCHAIN": "msys", "MSYS_BITS": 64}

    PLATFORM (i686 / x86_64) and MSYS_BITS (32 / 64) both set the bits;
    a missing value falls back to the target triple.
    """
    if isinstance(entry, MatrixCell):
        return entry
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"Matrix entry must be a cell or a mapping, got {type(entry).__name__}")

    data: Dict[str, Any] = {str(k).lower(): v for k, v in entry.items()}

    for required in ("channel", "target"):
        if not data.get(required):
            raise ConfigurationError(f"Matrix entry {dict(entry)!r} is missing {required!r}")
    target = str(data["target"])

    raw_toolchain = data.get("toolchain")
    if raw_toolchain is None:
        toolchain = _toolchain_from_target(target)
    else:
        toolchain = _TOOLCHAIN_ALIASES.get(str(raw_toolchain).lower(), str(raw_toolchain))

    bits: Optional[int] = None
    if data.get("bits") is not None:
        bits = _as_bits(data["bits"], "bits")
    elif data.get("msys_bits") is not None:
        bits = _as_bits(data["msys_bits"], "MSYS_BITS")
    elif data.get("platform") is not None:
        platform = str(data["platform"])
        if platform not in _ARCH_BITS:
            raise ConfigurationError(f"Unknown PLATFORM {platform!r} in matrix entry")
        bits = _ARCH_BITS[platform]

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigurationError(f"enabled must be True or False, got {enabled!r}")

    return cell(
        str(data["channel"]),
        target,
        toolchain,
        bits,
        enabled=enabled,
    )
