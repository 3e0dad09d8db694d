# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


CHANNELS = ("stable", "beta", "nightly")
TOOLCHAINS = ("msvc", "gnu-msys")
PLATFORM_BITS = (32, 64)

# Action kinds, applied to a job's environment in order
ACTIVATE_VCVARS = "activate_vcvars"
SET_ENV_VAR = "set_env_var"
PREPEND_PATH = "prepend_path"
ACTION_KINDS = (ACTIVATE_VCVARS, SET_ENV_VAR, PREPEND_PATH)


class ConfigurationError(ValueError):
    """A matrix declaration or axis combination that cannot be resolved."""


@dataclass(frozen=True)
class MatrixCell:
    """A declared axis combination. Disabled cells never become jobs."""
    channel: str
    target: str
    toolchain: str
    platform_bits: int
    enabled: bool = True

    @property
    def key(self) -> Tuple[str, str, str, int]:
        return (self.channel, self.target, self.toolchain, self.platform_bits)


@dataclass(frozen=True)
class JobDescriptor:
    """
    One concrete matrix cell, ready to run.

    `allow_failure` is derived from the channel and cannot be passed in.
    """
    channel: str
    target: str
    toolchain: str
    platform_bits: int
    allow_failure: bool = field(init=False)

    def __post_init__(self) -> None:
        # frozen dataclass: bypass __setattr__
        object.__setattr__(self, "allow_failure", self.channel == "nightly")

    @property
    def name(self) -> str:
        return f"{self.channel}-{self.target}"


@dataclass(frozen=True)
class EnvAction:
    """A single environment-setup step for a job."""
    kind: str
    condition: Tuple[str, int]  # (toolchain, platform_bits) row it belongs to
    payload: Tuple[str, ...]

    def describe(self) -> str:
        if self.kind == ACTIVATE_VCVARS:
            return "call " + " ".join(
                [f'"{self.payload[0]}"', *self.payload[1:]]
            ).strip()
        if self.kind == SET_ENV_VAR:
            return f"set {self.payload[0]}={self.payload[1]}"
        return "set PATH=" + ";".join(self.payload) + ";%PATH%"
