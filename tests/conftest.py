"""Shared fixtures for winmatrix tests."""

from __future__ import annotations

import subprocess
from typing import Callable

import pytest
from click.testing import CliRunner

from winmatrix.ui.console import Console, set_console


class FakeShell:
    """
    Stand-in for subprocess.run.

    Records every call and answers from `handler(cmd, env)`, which returns
    (returncode, stdout). The default handler succeeds with no output,
    and answers activation scripts with the environment they were given.
    """

    def __init__(self, handler: Callable[[str, dict], tuple[int, str]] | None = None):
        self.calls: list[tuple[str, dict]] = []
        self.handler = handler or self.default

    @staticmethod
    def default(cmd: str, env: dict) -> tuple[int, str]:
        if cmd.startswith("cmd.exe"):
            return 0, "\n".join(f"{k}={v}" for k, v in env.items())
        return 0, ""

    def __call__(self, cmd, **kwargs):
        env = dict(kwargs.get("env") or {})
        self.calls.append((cmd, env))
        code, out = self.handler(cmd, env)
        return subprocess.CompletedProcess(cmd, code, stdout=out, stderr="")

    def commands(self) -> list[str]:
        return [c for c, _ in self.calls]


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(debug=False))
    yield
    set_console(Console(debug=False))


@pytest.fixture
def fake_shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def base_env() -> dict:
    return {"PATH": r"C:\Windows\system32", "VS140COMNTOOLS": r"C:\VS14\Common7\Tools"}


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()
