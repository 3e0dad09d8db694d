# resolver.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple, Union

from .dsl import to_cell
from .model import (
    ACTIVATE_VCVARS,
    CHANNELS,
    PREPEND_PATH,
    ConfigurationError,
    EnvAction,
    JobDescriptor,
    MatrixCell,
)


VCVARSALL = r"%VS140COMNTOOLS%\..\..\VC\vcvarsall.bat"
WINDOWS_SDK_SETENV = r"C:\Program Files\Microsoft SDKs\Windows\v7.1\Bin\SetEnv.cmd"
MSYS_ROOT = r"C:\msys64"

# Set for every job regardless of toolchain
GLOBAL_ENV: Dict[str, str] = {"RUSTONIG_STATIC_LIBONIG": "1"}

TEST_COMMAND = "cargo test --verbose --lib"


# ---------------------------------------------------------------------
# Decision table: (toolchain, bits) -> ordered actions
# ---------------------------------------------------------------------

def _msys_path(bits: int) -> Tuple[str, ...]:
    return (rf"{MSYS_ROOT}\mingw{bits}\bin", rf"{MSYS_ROOT}\usr\bin")


_ACTION_TABLE: Dict[Tuple[str, int], Tuple[Tuple[str, Tuple[str, ...]], ...]] = {
    ("msvc", 32): (
        (ACTIVATE_VCVARS, (VCVARSALL,)),
    ),
    ("msvc", 64): (
        (ACTIVATE_VCVARS, (WINDOWS_SDK_SETENV, "/x64")),
        (ACTIVATE_VCVARS, (VCVARSALL, "x86_amd64")),
    ),
    ("gnu-msys", 32): (
        (PREPEND_PATH, _msys_path(32)),
    ),
    ("gnu-msys", 64): (
        (PREPEND_PATH, _msys_path(64)),
    ),
}


def resolve_environment(job: JobDescriptor) -> List[EnvAction]:
    """
    Ordered environment-setup actions for a job.

    Raises ConfigurationError when (toolchain, platform_bits) has no row.
    """
    row = (job.toolchain, job.platform_bits)
    try:
        entries = _ACTION_TABLE[row]
    except KeyError:
        raise ConfigurationError(
            f"No environment rule for toolchain={job.toolchain!r} "
            f"platform_bits={job.platform_bits!r} (job {job.name})"
        ) from None
    return [EnvAction(kind=kind, condition=row, payload=payload) for kind, payload in entries]


def build_test_command(job: JobDescriptor) -> str:
    return TEST_COMMAND


# ---------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------

def _validate(c: MatrixCell) -> None:
    if c.channel not in CHANNELS:
        raise ConfigurationError(f"Unknown channel {c.channel!r}. Expected one of {list(CHANNELS)}")
    if not c.target:
        raise ConfigurationError("Matrix cell has an empty target")


def expand(cells: Iterable[Union[MatrixCell, Mapping[str, Any]]]) -> List[JobDescriptor]:
    """
    Turn declared cells into job descriptors, in declaration order.

    Disabled cells are skipped. Every enabled cell yields exactly one
    descriptor; a repeated cell is an error rather than a silent dedupe.
    Toolchain and bits are not checked here: a pair with no environment
    rule fails in resolve_environment, for that job only.
    """
    jobs: List[JobDescriptor] = []
    seen: Set[Tuple[str, str, str, int]] = set()

    for entry in cells:
        c = to_cell(entry)
        if not c.enabled:
            continue
        _validate(c)
        if c.key in seen:
            raise ConfigurationError(f"Duplicate matrix cell: {c.key}")
        seen.add(c.key)
        jobs.append(
            JobDescriptor(
                channel=c.channel,
                target=c.target,
                toolchain=c.toolchain,
                platform_bits=c.platform_bits,
            )
        )

    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigurationError(f"Duplicate job names found: {dupes}")

    return jobs
