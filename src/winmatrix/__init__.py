from .dsl import cell, disabled, matrix, m
from .model import ConfigurationError, EnvAction, JobDescriptor, MatrixCell
from .resolver import build_test_command, expand, resolve_environment
from .runner import JobEnvironment, SetupFailure, TestFailure, load_matrix, run_job, run_matrix

__all__ = [
    "cell",
    "disabled",
    "matrix",
    "m",
    "ConfigurationError",
    "EnvAction",
    "JobDescriptor",
    "MatrixCell",
    "build_test_command",
    "expand",
    "resolve_environment",
    "JobEnvironment",
    "SetupFailure",
    "TestFailure",
    "load_matrix",
    "run_job",
    "run_matrix",
]
