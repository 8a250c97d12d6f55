"""
Custom exceptions for tfbench.

Provides specific exception types with associated exit codes
for the failure modes of a benchmark run. All exceptions support JSON
serialization for CI integration via --json-errors flag.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


class ExitCode:
    """Standard exit codes for tfbench."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    ENVIRONMENT_ERROR = 2
    STATE_ERROR = 3
    CAPABILITY_MISMATCH = 4
    EXECUTION_FAILED = 5
    REWRITE_FAILED = 6
    REPORT_WRITE_FAILED = 7


class BenchmarkError(Exception):
    """Base class for all tfbench errors."""

    @property
    def exit_code(self) -> int:
        return ExitCode.GENERAL_ERROR


@dataclass
class ExecutionError(BenchmarkError):
    """Raised when an external command exits non-zero, cannot start or times out.

    Attributes:
        command: The argv that was executed
        returncode: Exit status (None if the process never started)
        output: Captured output of the process
        timeout: Whether the process was killed by the deadline
    """
    command: list[str]
    returncode: Optional[int] = None
    output: str = ""
    timeout: bool = False

    def __str__(self) -> str:
        cmd = " ".join(self.command)
        if self.timeout:
            msg = f"Command timed out: {cmd}"
        elif self.returncode is None:
            msg = f"Command could not be started: {cmd}"
        else:
            msg = f"Command failed with exit code {self.returncode}: {cmd}"
        if self.output.strip():
            msg += f"\noutput: {self.output.strip()}"
        return msg

    @property
    def exit_code(self) -> int:
        return ExitCode.EXECUTION_FAILED


@dataclass
class ToolNotAvailable(BenchmarkError):
    """Raised when the terraform executable cannot be run."""
    executable: str
    details: str = ""

    def __str__(self) -> str:
        msg = f"could not execute `{self.executable}` command"
        if self.details:
            msg += f": {self.details}"
        return msg

    @property
    def exit_code(self) -> int:
        return ExitCode.ENVIRONMENT_ERROR


@dataclass
class MissingCredentials(BenchmarkError):
    """Raised when controller credentials are absent from the environment.

    Attributes:
        required: All variables needed for the controller version lookup
        missing: The subset that is not set
    """
    required: list[str]
    missing: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"environment variable(s) {', '.join(self.missing)} not set.\n"
            f"The environment variables {', '.join(self.required)} must be set to "
            "include the controller version in the generated report.\n"
            "Set --skip-controller-version flag to skip including controller "
            "version in the report."
        )

    @property
    def exit_code(self) -> int:
        return ExitCode.ENVIRONMENT_ERROR


@dataclass
class StateError(BenchmarkError):
    """Raised when the workspace state cannot be read or parsed."""
    details: str
    output: str = ""

    def __str__(self) -> str:
        return f"could not read terraform state: {self.details}"

    @property
    def exit_code(self) -> int:
        return ExitCode.STATE_ERROR


@dataclass
class CapabilityError(BenchmarkError):
    """Raised when a measurement method needs a newer terraform."""
    feature: str
    detected_version: str
    required_version: str
    suggestion: str = ""

    def __str__(self) -> str:
        msg = (
            f"terraform version is too low to use {self.feature}.\n"
            f"Your terraform version is {self.detected_version}, {self.feature} "
            f"requires at least v{self.required_version}."
        )
        if self.suggestion:
            msg += f"\n{self.suggestion}"
        return msg

    @property
    def exit_code(self) -> int:
        return ExitCode.CAPABILITY_MISMATCH


@dataclass
class RewriteError(BenchmarkError):
    """Raised when the reduced configuration for one resource type cannot be built."""
    resource_type: str
    details: str

    def __str__(self) -> str:
        return f"could not build configuration for {self.resource_type}: {self.details}"

    @property
    def exit_code(self) -> int:
        return ExitCode.REWRITE_FAILED


@dataclass
class MeasurementError(BenchmarkError):
    """Raised when a timed operation fails.

    Attributes:
        operation: What was being measured (e.g. "terraform refresh")
        resource_type: Resource type under measurement, if any
        details: Underlying error message
        output: Captured process output
    """
    operation: str
    details: str
    resource_type: Optional[str] = None
    output: str = ""

    def __str__(self) -> str:
        target = f" for {self.resource_type}" if self.resource_type else ""
        return f"{self.operation}{target} failed: {self.details}"

    @property
    def exit_code(self) -> int:
        return ExitCode.EXECUTION_FAILED


@dataclass
class ControllerError(BenchmarkError):
    """Raised when the controller version lookup fails."""
    details: str

    def __str__(self) -> str:
        return f"could not get controller version: {self.details}"


@dataclass
class ReportWriteError(BenchmarkError):
    """Raised when the report cannot be persisted."""
    path: str
    details: str

    def __str__(self) -> str:
        return (
            f"could not write report to file {self.path}: {self.details}. "
            "The report has also been output to the console, please recover "
            "the report from there"
        )

    @property
    def exit_code(self) -> int:
        return ExitCode.REPORT_WRITE_FAILED


def exception_to_json(exc: Exception, context: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Convert an exception to a JSON-serializable dictionary.

    Args:
        exc: The exception to convert
        context: Optional additional context (resource type, iteration, etc.)

    Returns:
        JSON-serializable dict with error details
    """
    error_dict: dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
    }

    if hasattr(exc, "exit_code"):
        error_dict["exit_code"] = exc.exit_code
    else:
        error_dict["exit_code"] = ExitCode.GENERAL_ERROR

    if isinstance(exc, ExecutionError):
        error_dict["command"] = exc.command
        error_dict["returncode"] = exc.returncode
        error_dict["timeout"] = exc.timeout
        if exc.output:
            error_dict["output"] = exc.output[:2000]  # Truncate for JSON

    elif isinstance(exc, MissingCredentials):
        error_dict["required"] = exc.required
        error_dict["missing"] = exc.missing

    elif isinstance(exc, CapabilityError):
        error_dict["feature"] = exc.feature
        error_dict["detected_version"] = exc.detected_version
        error_dict["required_version"] = exc.required_version

    elif isinstance(exc, (StateError, MeasurementError)):
        error_dict["details"] = exc.details
        if isinstance(exc, MeasurementError):
            error_dict["operation"] = exc.operation
            if exc.resource_type:
                error_dict["resource_type"] = exc.resource_type
        if exc.output:
            error_dict["output"] = exc.output[:2000]

    elif isinstance(exc, RewriteError):
        error_dict["resource_type"] = exc.resource_type
        error_dict["details"] = exc.details

    if context:
        error_dict["context"] = context

    return {"error": error_dict}


def format_json_error(exc: Exception, context: Optional[dict[str, Any]] = None) -> str:
    """Format an exception as a JSON string."""
    return json.dumps(exception_to_json(exc, context), indent=2, default=str)
