# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from winmatrix.model import ConfigurationError
from winmatrix.resolver import build_test_command, resolve_environment
from winmatrix.runner import (
    MatrixConfig,
    default_config,
    load_matrix,
    run_failed,
    run_matrix,
    select_jobs,
)
from winmatrix.ui.console import Console, set_console, get_console


DEFAULT_MATRIX_FILE = "winmatrix_matrix.py"


def find_matrix_files() -> list[Path]:
    """
    Find matrix files in the current directory.

    Returns:
        List of Path objects for matrix files
    """
    current_dir = Path(".")
    found = []

    default_file = current_dir / DEFAULT_MATRIX_FILE
    if default_file.exists():
        found.append(default_file)

    for path in current_dir.glob("*_matrix.py"):
        if path != default_file:
            found.append(path)

    return sorted(found)


def discover_matrix(matrix_arg: str | None) -> MatrixConfig:
    """
    Load the matrix named on the command line, the one matrix file in the
    current directory, or the built-in default.

    Raises:
        SystemExit: If the named file is missing or several files match
    """
    console = get_console()

    if matrix_arg:
        matrix_path = Path(matrix_arg)
        if not matrix_path.exists() and matrix_path.suffix != ".py":
            matrix_path = Path(str(matrix_path) + ".py")
        if not matrix_path.exists():
            console.print_error(
                "Matrix file not found",
                f"Could not find matrix file: {matrix_arg}",
                suggestion="Create a matrix file or specify a different path:\n  winmatrix run --matrix my_matrix.py",
            )
            sys.exit(1)
        return load_matrix(matrix_path)

    matrix_files = find_matrix_files()

    if len(matrix_files) > 1:
        if Path(DEFAULT_MATRIX_FILE) in matrix_files:
            return load_matrix(DEFAULT_MATRIX_FILE)
        file_list = "\n".join(f"  {f}" for f in matrix_files)
        console.print_error(
            "Multiple matrix files found",
            "Found multiple matrix files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a matrix explicitly:\n  winmatrix run --matrix {matrix_files[0]}",
        )
        sys.exit(1)

    if matrix_files:
        return load_matrix(matrix_files[0])

    console.print_debug("No matrix file found, using the built-in Windows matrix")
    return default_config()


def _actions_payload(job) -> dict:
    try:
        actions = resolve_environment(job)
    except ConfigurationError as e:
        return {"actions": [], "error": str(e)}
    return {"actions": [{"kind": a.kind, "payload": list(a.payload)} for a in actions]}


def _fail(exc: Exception) -> None:
    console = get_console()
    if isinstance(exc, ConfigurationError):
        console.print_error("Invalid matrix", str(exc))
    else:
        console.print_exception(exc)
    sys.exit(1)


matrix_option = click.option(
    "--matrix",
    "matrix_file",
    default=None,
    help=f"Matrix file path (defaults to {DEFAULT_MATRIX_FILE} if present, else the built-in matrix)",
)
channel_option = click.option(
    "--channel",
    "channels",
    multiple=True,
    type=click.Choice(["stable", "beta", "nightly"]),
    help="Only include jobs on this channel (repeatable)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """winmatrix: Windows toolchain matrix resolver and runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@matrix_option
@channel_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print jobs and their setup actions as JSON")
@click.pass_context
def jobs(ctx, matrix_file, channels, as_json):
    """List the jobs a matrix expands to."""
    console = get_console()
    try:
        config = discover_matrix(matrix_file)
        selected = select_jobs(config.jobs(), channels=channels)
        if as_json:
            payload = [
                {
                    "name": j.name,
                    "channel": j.channel,
                    "target": j.target,
                    "toolchain": j.toolchain,
                    "platform_bits": j.platform_bits,
                    "allow_failure": j.allow_failure,
                    **_actions_payload(j),
                    "env": dict(config.global_env),
                    "test_command": build_test_command(j),
                }
                for j in selected
            ]
            click.echo(json.dumps(payload, indent=2))
            return

        console.print_jobs(
            [(j.name, j.channel, j.toolchain, j.platform_bits, j.allow_failure) for j in selected]
        )
    except Exception as e:
        _fail(e)


@cli.command()
@matrix_option
@channel_option
@click.pass_context
def plan(ctx, matrix_file, channels):
    """Show the setup actions and test command for every job, without running."""
    console = get_console()
    try:
        config = discover_matrix(matrix_file)
        selected = select_jobs(config.jobs(), channels=channels)
        for name, value in config.global_env.items():
            console.print_info(f"global env: {name}={value}")
        results = run_matrix(selected, install=config.install, global_env=config.global_env, dry_run=True)
        console.print_results(results)
        if run_failed(results):
            sys.exit(1)
    except Exception as e:
        _fail(e)


@cli.command()
@matrix_option
@channel_option
@click.option("--workers", default=None, type=int, help="Number of parallel jobs")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Stop scheduling new jobs after the first fatal failure")
@click.option("--skip-install", is_flag=True, default=False, help="Do not run the matrix's install commands")
@click.option("--repo-root", default=".", show_default=True, help="Directory the commands run in")
@click.option("--dry-run", is_flag=True, default=False, help="Resolve and print every job without running anything")
@click.pass_context
def run(ctx, matrix_file, channels, workers, fail_fast, skip_install, repo_root, dry_run):
    """Run every job in the matrix."""
    console = get_console()
    try:
        config = discover_matrix(matrix_file)
        selected = select_jobs(config.jobs(), channels=channels)
        console.print_run_started(
            source=config.source,
            job_count=len(selected),
            disabled_count=sum(1 for c in config.cells if not c.enabled),
        )

        results = run_matrix(
            selected,
            repo_root=repo_root,
            install=[] if skip_install else config.install,
            global_env=config.global_env,
            max_workers=workers,
            fail_fast=fail_fast,
            dry_run=dry_run,
        )

        console.print_results(results)

        if run_failed(results):
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(e)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
