"""Tests for matrix expansion and environment resolution."""

from __future__ import annotations

import pytest

from winmatrix.defaults import default_matrix
from winmatrix.dsl import cell, disabled
from winmatrix.model import (
    ACTIVATE_VCVARS,
    PLATFORM_BITS,
    PREPEND_PATH,
    TOOLCHAINS,
    ConfigurationError,
    JobDescriptor,
)
from winmatrix.resolver import (
    TEST_COMMAND,
    VCVARSALL,
    WINDOWS_SDK_SETENV,
    build_test_command,
    expand,
    resolve_environment,
)


class TestExpand:
    def test_default_matrix_skips_disabled_cells(self) -> None:
        cells = default_matrix()
        jobs = expand(cells)

        assert len(cells) == 12
        assert len(jobs) == sum(1 for c in cells if c.enabled) == 8
        assert not any(j.toolchain == "msvc" and j.channel != "stable" for j in jobs)

    def test_declaration_order_is_kept(self) -> None:
        jobs = expand(
            [
                cell("beta", "i686-pc-windows-gnu", "gnu-msys", 32),
                cell("stable", "x86_64-pc-windows-msvc", "msvc", 64),
            ]
        )
        assert [j.name for j in jobs] == ["beta-i686-pc-windows-gnu", "stable-x86_64-pc-windows-msvc"]

    def test_no_two_descriptors_identical(self) -> None:
        jobs = expand(default_matrix())
        assert len(set(jobs)) == len(jobs)
        assert len({j.name for j in jobs}) == len(jobs)

    def test_duplicate_cell_is_rejected(self) -> None:
        c = cell("stable", "x86_64-pc-windows-gnu", "gnu-msys", 64)
        with pytest.raises(ConfigurationError, match="Duplicate"):
            expand([c, c])

    def test_disabled_duplicate_is_ignored(self) -> None:
        jobs = expand(
            [
                cell("stable", "x86_64-pc-windows-gnu", "gnu-msys", 64),
                disabled("stable", "x86_64-pc-windows-gnu", "gnu-msys", 64),
            ]
        )
        assert len(jobs) == 1

    def test_unknown_channel_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown channel"):
            expand([cell("weekly", "x86_64-pc-windows-gnu", "gnu-msys", 64)])

    def test_unsupported_row_still_expands(self) -> None:
        jobs = expand(
            [
                cell("stable", "i686-pc-windows-gnu", "gnu-msys", 32),
                cell("stable", "x86_64-pc-windows-msvc", "msvc", 128),
                cell("beta", "x86_64-pc-windows-gnu", "clang", 64),
            ]
        )
        assert len(jobs) == 3
        resolve_environment(jobs[0])
        for job in jobs[1:]:
            with pytest.raises(ConfigurationError):
                resolve_environment(job)

    def test_descriptor_style_entries(self) -> None:
        jobs = expand(
            [
                {"channel": "stable", "target": "x86_64-pc-windows-msvc", "TOOLCHAIN": "msvc", "PLATFORM": "x86_64"},
                {"channel": "nightly", "target": "i686-pc-windows-gnu", "TOOLCHAIN": "msys"},
            ]
        )
        assert (jobs[0].toolchain, jobs[0].platform_bits) == ("msvc", 64)
        assert (jobs[1].toolchain, jobs[1].platform_bits) == ("gnu-msys", 32)

    def test_empty_matrix(self) -> None:
        assert expand([]) == []


class TestAllowFailure:
    @pytest.mark.parametrize("channel,expected", [("stable", False), ("beta", False), ("nightly", True)])
    def test_allow_failure_follows_channel(self, channel, expected) -> None:
        job = JobDescriptor(channel, "x86_64-pc-windows-gnu", "gnu-msys", 64)
        assert job.allow_failure is expected

    def test_allow_failure_cannot_be_passed(self) -> None:
        with pytest.raises(TypeError):
            JobDescriptor("stable", "x86_64-pc-windows-gnu", "gnu-msys", 64, True)  # type: ignore[call-arg]

    def test_every_default_job(self) -> None:
        for job in expand(default_matrix()):
            assert job.allow_failure == (job.channel == "nightly")


class TestResolveEnvironment:
    def test_msvc_64(self) -> None:
        job = JobDescriptor("stable", "x86_64-pc-windows-msvc", "msvc", 64)
        actions = resolve_environment(job)

        assert [a.kind for a in actions] == [ACTIVATE_VCVARS, ACTIVATE_VCVARS]
        assert actions[0].payload == (WINDOWS_SDK_SETENV, "/x64")
        assert actions[1].payload == (VCVARSALL, "x86_amd64")
        assert job.allow_failure is False

    def test_msvc_32(self) -> None:
        actions = resolve_environment(JobDescriptor("stable", "i686-pc-windows-msvc", "msvc", 32))
        assert len(actions) == 1
        assert actions[0].kind == ACTIVATE_VCVARS
        assert actions[0].payload == (VCVARSALL,)

    def test_gnu_32(self) -> None:
        job = JobDescriptor("beta", "i686-pc-windows-gnu", "gnu-msys", 32)
        actions = resolve_environment(job)

        assert len(actions) == 1
        assert actions[0].kind == PREPEND_PATH
        assert actions[0].payload == (r"C:\msys64\mingw32\bin", r"C:\msys64\usr\bin")
        assert job.allow_failure is False

    def test_gnu_64(self) -> None:
        actions = resolve_environment(JobDescriptor("nightly", "x86_64-pc-windows-gnu", "gnu-msys", 64))
        assert actions[0].payload == (r"C:\msys64\mingw64\bin", r"C:\msys64\usr\bin")

    def test_actions_carry_their_row(self) -> None:
        for action in resolve_environment(JobDescriptor("stable", "x86_64-pc-windows-msvc", "msvc", 64)):
            assert action.condition == ("msvc", 64)

    def test_unmatched_row(self) -> None:
        job = JobDescriptor("stable", "x86_64-pc-windows-msvc", "msvc", 128)
        with pytest.raises(ConfigurationError, match="No environment rule"):
            resolve_environment(job)

    def test_every_supported_pair_has_a_row(self) -> None:
        for toolchain in TOOLCHAINS:
            for bits in PLATFORM_BITS:
                job = JobDescriptor("stable", "x86_64-pc-windows-gnu", toolchain, bits)
                assert resolve_environment(job)

    def test_idempotent(self) -> None:
        for job in expand(default_matrix()):
            first = resolve_environment(job)
            assert first
            assert first == resolve_environment(job)

    def test_describe(self) -> None:
        actions = resolve_environment(JobDescriptor("stable", "x86_64-pc-windows-msvc", "msvc", 64))
        assert actions[1].describe() == f'call "{VCVARSALL}" x86_amd64'

        gnu = resolve_environment(JobDescriptor("stable", "i686-pc-windows-gnu", "gnu-msys", 32))[0]
        assert gnu.describe() == r"set PATH=C:\msys64\mingw32\bin;C:\msys64\usr\bin;%PATH%"


def test_test_command_is_fixed() -> None:
    commands = {build_test_command(j) for j in expand(default_matrix())}
    assert commands == {TEST_COMMAND}
    assert TEST_COMMAND == "cargo test --verbose --lib"
