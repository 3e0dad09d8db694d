"""Console output formatting utilities for winmatrix."""

from __future__ import annotations

import sys
import threading
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # jobs print from worker threads
        self._lock = threading.Lock()

    def _out(self, message: str, err: bool = False) -> None:
        with self._lock:
            print(message, file=sys.stderr if err else sys.stdout)

    def print_run_started(
        self,
        source: str,
        job_count: int,
        disabled_count: int = 0,
    ) -> None:
        """Print run start information."""
        self._out("\nRUN STARTED")
        self._out(f"Matrix: {source}")
        self._out(f"Jobs: {job_count}")
        if disabled_count:
            self._out(f"Disabled cells: {disabled_count}")
        self._out("")

    def print_job_start(self, name: str) -> None:
        self._out(f"\nJOB STARTED: {name}")

    def print_action(self, job: str, description: str) -> None:
        self._out(f"[{job}] ENV: {description}")

    def print_step(self, job: str, cmd: str) -> None:
        self._out(f"[{job}] STEP: {cmd}")

    def print_success(self, name: str) -> None:
        self._out(f"[{name}] STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        output: Optional[str] = None,
        allowed: bool = False,
        is_job: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job name
            reason: Failure reason/error message
            exit_code: Optional exit code
            output: Captured output tail, shown in debug mode
            allowed: Job is allowed to fail (nightly)
            is_job: If True, print "JOB FAILED", otherwise "STEP FAILED"
        """
        prefix = "JOB FAILED" if is_job else "STEP FAILED"
        suffix = " (allowed)" if allowed else ""
        lines = [f"{prefix}: {name}{suffix}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        lines.append(f"Error: {reason.splitlines()[0] if reason else 'Unknown error'}")
        if self.debug and output:
            lines.append(output)
        self._out("\n".join(lines))

    def print_jobs(self, rows: list[tuple[str, str, str, int, bool]]) -> None:
        """Print one line per job: name, channel, toolchain, bits, allow_failure."""
        if not rows:
            self._out("(no jobs)")
            return
        width = max(len(r[0]) for r in rows)
        for name, channel, toolchain, bits, allow_failure in rows:
            flag = "  allow_failure" if allow_failure else ""
            self._out(f"  {name.ljust(width)}  {channel:<8} {toolchain:<9} {bits}-bit{flag}")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        self._out("\n" + "=" * 40)
        self._out("RESULTS")
        self._out("=" * 40)
        for job, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            self._out(f"  {job}: {status_display}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """Print structured error message."""
        lines = [f"\nERROR: {title}", message]
        for detail in details or []:
            lines.append(f"  {detail}")
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out("\n".join(lines), err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
