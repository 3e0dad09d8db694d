# runner.py
from __future__ import annotations

import os
import re
import runpy
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .defaults import INSTALL, default_matrix
from .model import (
    ACTIVATE_VCVARS,
    PREPEND_PATH,
    SET_ENV_VAR,
    ConfigurationError,
    EnvAction,
    JobDescriptor,
    MatrixCell,
)
from .dsl import matrix as dsl_matrix, to_cell
from .resolver import GLOBAL_ENV, build_test_command, expand, resolve_environment
from .ui.console import get_console


OUTPUT_TAIL = 4000

# Result statuses
OK = "ok"
FAILED = "failed"
FAILED_ALLOWED = "failed(allowed)"
CONFIG_ERROR = "error(config)"
CANCELLED = "cancelled"
PLANNED = "planned"

FATAL_STATUSES = (FAILED, CONFIG_ERROR)


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class SetupFailure(Exception):
    job: str
    step: str
    exit_code: int | None
    output: str = ""

    def __str__(self) -> str:
        code = "n/a" if self.exit_code is None else self.exit_code
        return f"[{self.job}] setup '{self.step}' failed (exit={code})"


@dataclass
class TestFailure(Exception):
    __test__ = False  # not a pytest class

    job: str
    cmd: str
    exit_code: int
    output: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] test command failed (exit={self.exit_code}): {self.cmd}"


# ----------------------------------------------------------------------
# Scoped job environment
# ----------------------------------------------------------------------

_PERCENT_VAR = re.compile(r"%([^%=]+)%")

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class JobEnvironment:
    """
    Environment variables for one job.

    Actions mutate this mapping only; os.environ is left alone so jobs on
    other threads never see each other's PATH or toolchain variables.
    Names are matched case-insensitively, as on Windows.
    """

    def __init__(
        self,
        job: JobDescriptor,
        base: Optional[Mapping[str, str]] = None,
        extra: Optional[Mapping[str, str]] = None,
        run: Optional[Runner] = None,
    ):
        self.job = job
        self.vars: Dict[str, str] = dict(os.environ if base is None else base)
        self._run = run or subprocess.run
        for k, v in (extra or {}).items():
            self.set(k, str(v))

    def _key(self, name: str) -> str:
        for k in self.vars:
            if k.upper() == name.upper():
                return k
        return name

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.vars.get(self._key(name), default)

    def set(self, name: str, value: str) -> None:
        self.vars[self._key(name)] = value

    def expand(self, value: str) -> str:
        """Expand %VAR% references; unknown variables are left as written."""
        def sub(match: re.Match) -> str:
            found = self.get(match.group(1))
            return match.group(0) if found is None else found

        return _PERCENT_VAR.sub(sub, value)

    def prepend_path(self, dirs: Sequence[str]) -> None:
        current = self.get("PATH", "") or ""
        parts = [self.expand(d) for d in dirs]
        if current:
            parts.append(current)
        self.set("PATH", ";".join(parts))

    def activate(self, script: str, args: Sequence[str] = ()) -> None:
        """
        Run a vendor batch script and adopt the environment it leaves behind.
        """
        script_path = self.expand(script)
        inner = " ".join([f'call "{script_path}"', *args, ">nul", "&&", "set"])
        cmd = f'cmd.exe /s /c "{inner}"'
        step = f"activate {script_path} {' '.join(args)}".strip()

        try:
            proc = self._run(cmd, shell=True, env=dict(self.vars), text=True, capture_output=True)
        except FileNotFoundError as e:
            raise SetupFailure(job=self.job.name, step=step, exit_code=None, output=str(e)) from e

        if proc.returncode != 0:
            raise SetupFailure(
                job=self.job.name,
                step=step,
                exit_code=proc.returncode,
                output=((proc.stdout or "") + (proc.stderr or ""))[-OUTPUT_TAIL:],
            )

        activated: Dict[str, str] = {}
        for line in (proc.stdout or "").splitlines():
            name, sep, value = line.partition("=")
            if sep and name:
                activated[name] = value
        if not activated:
            raise SetupFailure(
                job=self.job.name,
                step=step,
                exit_code=proc.returncode,
                output="activation script printed no environment",
            )
        self.vars = activated

    def apply(self, action: EnvAction) -> None:
        if action.kind == ACTIVATE_VCVARS:
            self.activate(action.payload[0], action.payload[1:])
        elif action.kind == SET_ENV_VAR:
            self.set(action.payload[0], self.expand(action.payload[1]))
        elif action.kind == PREPEND_PATH:
            self.prepend_path(action.payload)
        else:
            raise ConfigurationError(f"Unknown environment action kind: {action.kind!r}")

    def as_dict(self) -> Dict[str, str]:
        return dict(self.vars)


# ----------------------------------------------------------------------
# Matrix loading (local file)
# ----------------------------------------------------------------------

@dataclass
class MatrixConfig:
    cells: List[MatrixCell]
    install: List[str] = field(default_factory=list)
    global_env: Dict[str, str] = field(default_factory=lambda: dict(GLOBAL_ENV))
    source: str = "<default>"

    def jobs(self) -> List[JobDescriptor]:
        return expand(self.cells)


def default_config() -> MatrixConfig:
    return MatrixConfig(cells=default_matrix(), install=list(INSTALL))


def load_matrix(path: str | Path) -> MatrixConfig:
    """
    Load a matrix from a python file.

    The file must define either:
      - matrix() -> list of cells
      - MATRIX = [cell, ...]
    and may define INSTALL = [cmd, ...] and GLOBAL_ENV = {name: value}.
    """
    m_path = Path(path).expanduser().resolve()
    if not m_path.exists():
        raise FileNotFoundError(f"Matrix file not found: {m_path}")
    if m_path.suffix != ".py":
        raise ConfigurationError(f"Matrix must be a .py file, got: {m_path.name}")

    globals_dict = runpy.run_path(str(m_path), run_name=f"winmatrix_matrix_{m_path.stem}")

    declared = globals_dict.get("matrix")
    if "MATRIX" in globals_dict:
        cells = globals_dict["MATRIX"]
    elif callable(declared) and declared is not dsl_matrix:
        cells = declared()
    else:
        raise ConfigurationError(f"{m_path.name} defines neither matrix() nor MATRIX")

    if not isinstance(cells, (list, tuple)):
        raise ConfigurationError("Matrix must return/define a list of cells")

    install = globals_dict.get("INSTALL", [])
    if not isinstance(install, (list, tuple)) or not all(isinstance(c, str) for c in install):
        raise ConfigurationError("INSTALL must be a list of shell commands")

    global_env = dict(GLOBAL_ENV)
    global_env.update({str(k): str(v) for k, v in (globals_dict.get("GLOBAL_ENV") or {}).items()})

    return MatrixConfig(
        cells=[to_cell(c) for c in cells],
        install=list(install),
        global_env=global_env,
        source=str(m_path),
    )


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_shell(cmd: str, env: JobEnvironment, repo_root: Path, run: Runner) -> "subprocess.CompletedProcess[str]":
    return run(
        cmd,
        shell=True,
        cwd=str(repo_root),
        env=env.as_dict(),
        text=True,
        capture_output=True,
    )


def run_job(
    job: JobDescriptor,
    *,
    repo_root: str | Path = ".",
    install: Sequence[str] = (),
    base_env: Optional[Mapping[str, str]] = None,
    global_env: Optional[Mapping[str, str]] = None,
    run: Optional[Runner] = None,
) -> Tuple[str, str]:
    """
    Returns (job_name, "ok").
    Raises ConfigurationError, SetupFailure or TestFailure.
    """
    run = run or subprocess.run
    root = Path(repo_root).resolve()
    console = get_console()
    console.print_job_start(job.name)

    # resolve before touching anything so a bad row never runs install steps
    resolve_environment(job)

    env = JobEnvironment(job, base=base_env, extra=GLOBAL_ENV if global_env is None else global_env, run=run)

    for cmd in install:
        console.print_step(job.name, cmd)
        try:
            proc = _run_shell(cmd, env, root, run)
        except FileNotFoundError as e:
            raise SetupFailure(job=job.name, step=cmd, exit_code=None, output=str(e)) from e
        if proc.returncode != 0:
            raise SetupFailure(
                job=job.name,
                step=cmd,
                exit_code=proc.returncode,
                output=((proc.stdout or "") + (proc.stderr or ""))[-OUTPUT_TAIL:],
            )

    for action in resolve_environment(job):
        console.print_action(job.name, action.describe())
        env.apply(action)

    test_cmd = build_test_command(job)
    console.print_step(job.name, test_cmd)
    try:
        proc = _run_shell(test_cmd, env, root, run)
    except FileNotFoundError as e:
        raise TestFailure(job=job.name, cmd=test_cmd, exit_code=127, output=str(e)) from e
    if proc.returncode != 0:
        raise TestFailure(
            job=job.name,
            cmd=test_cmd,
            exit_code=proc.returncode,
            output=((proc.stdout or "") + (proc.stderr or ""))[-OUTPUT_TAIL:],
        )

    return job.name, OK


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def select_jobs(jobs: List[JobDescriptor], *, channels: Sequence[str] = ()) -> List[JobDescriptor]:
    if not channels:
        return list(jobs)
    return [j for j in jobs if j.channel in channels]


def _status_for_failure(job: JobDescriptor, exc: Exception) -> str:
    if isinstance(exc, ConfigurationError):
        return CONFIG_ERROR
    return FAILED_ALLOWED if job.allow_failure else FAILED


def run_matrix(
    jobs: List[JobDescriptor],
    *,
    repo_root: str | Path = ".",
    install: Sequence[str] = (),
    global_env: Optional[Mapping[str, str]] = None,
    base_env: Optional[Mapping[str, str]] = None,
    max_workers: int | None = None,
    fail_fast: bool = False,
    dry_run: bool = False,
    run: Optional[Runner] = None,
) -> Dict[str, str]:
    """
    Run every job once and return {job_name: status}.

    Nightly failures are recorded as "failed(allowed)" and never stop
    scheduling; with fail_fast, the first fatal failure cancels the jobs
    that have not started yet.
    """
    console = get_console()
    results: Dict[str, str] = {}

    if dry_run:
        for job in jobs:
            console.print_job_start(job.name)
            try:
                for action in resolve_environment(job):
                    console.print_action(job.name, action.describe())
            except ConfigurationError as e:
                console.print_failure(job.name, str(e), is_job=True)
                results[job.name] = CONFIG_ERROR
                continue
            console.print_step(job.name, build_test_command(job))
            results[job.name] = PLANNED
        return results

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    pending: List[JobDescriptor] = list(reversed(jobs))
    in_flight: Dict = {}
    fatal = False

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while pending or in_flight:
            while pending and len(in_flight) < max_workers and not (fail_fast and fatal):
                job = pending.pop()
                fut = pool.submit(
                    run_job,
                    job,
                    repo_root=repo_root,
                    install=install,
                    base_env=base_env,
                    global_env=global_env,
                    run=run,
                )
                in_flight[fut] = job

            if not in_flight:
                break

            fut = next(as_completed(list(in_flight.keys())))
            job = in_flight.pop(fut)

            try:
                _name, status = fut.result()
                results[job.name] = status
                console.print_success(job.name)
            except Exception as e:
                status = _status_for_failure(job, e)
                results[job.name] = status
                exit_code = getattr(e, "exit_code", None)
                console.print_failure(
                    job.name,
                    str(e),
                    exit_code=exit_code,
                    output=getattr(e, "output", None),
                    allowed=status == FAILED_ALLOWED,
                    is_job=True,
                )
                if status in FATAL_STATUSES:
                    fatal = True

    for job in reversed(pending):
        results[job.name] = CANCELLED

    return {j.name: results[j.name] for j in jobs if j.name in results}


def run_failed(results: Mapping[str, str]) -> bool:
    return any(status in FATAL_STATUSES for status in results.values())
