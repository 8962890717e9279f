"""
Exception classes for the resolver.
"""

from typing import Optional, Sequence

from .constants import ErrorCodes


class ResolverError(Exception):
    """Base exception for all resolution errors.

    Carries a stable ``code`` and optional human-oriented ``details`` that the
    package manager prints below the message.
    """

    code = "EUNKNOWN"

    def __init__(self, message: str, details: Optional[str] = None):
        self.details = details
        super().__init__(message)


class ToolUnavailableError(ResolverError):
    """Raised when the version-control executable is not on the PATH."""

    code = ErrorCodes.TOOL_UNAVAILABLE.value

    def __init__(self, executable: str):
        self.executable = executable
        super().__init__(f"{executable} is not installed or not in the PATH")


class NoMatchingTargetError(ResolverError):
    """Raised when no version, tag, branch or commit satisfies a target."""

    code = ErrorCodes.NO_MATCHING_TARGET.value

    def __init__(self, message: str, target: str, details: Optional[str] = None):
        self.target = target
        super().__init__(message, details)


class CommandError(ResolverError):
    """Raised when an external tool exits non-zero or cannot be spawned."""

    code = ErrorCodes.COMMAND_FAILED.value

    def __init__(
        self,
        executable: str,
        args: Sequence[str],
        exit_code: Optional[int],
        stdout: str = "",
        stderr: str = "",
        details: Optional[str] = None,
    ):
        self.executable = executable
        self.args_list = list(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        if details is None:
            details = "\n".join(part.strip() for part in (stderr, stdout) if part.strip())
        command = " ".join([executable, *self.args_list])
        if exit_code is None:
            message = f"Failed to execute \"{command}\""
        else:
            message = f"Failed to execute \"{command}\", exit code of #{exit_code}"
        super().__init__(message, details)


class CleanupError(ResolverError):
    """Raised when version-control metadata cannot be removed."""

    code = ErrorCodes.CLEANUP_FAILED.value

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Failed to remove {path}", reason)


class ConfigError(ResolverError):
    """Raised when a configuration file holds malformed values."""

    code = ErrorCodes.CONFIG_INVALID.value
