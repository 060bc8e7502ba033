#!/usr/bin/env -S python3 -B -u
"""
Structured Exception Hierarchy for RTC Emulator

This module provides the exception hierarchy used by every lab operation,
with user-friendly error messages and suggested actions for resolution.

Key Features:
- Structured exceptions for each error category (precondition, conflict,
  state access, external operation)
- Suggested actions for error resolution
- Debug information available only in verbose mode
- Exit codes shared by the command line front end
"""

import sys
import traceback
from typing import Optional, Dict, Any, List
from enum import IntEnum


class ErrorCode(IntEnum):
    """Standard exit codes for the application."""
    SUCCESS = 0
    NOT_FOUND = 2
    LAB_EXISTS = 3
    INVALID_INPUT = 10
    CONFIGURATION_ERROR = 11
    NETWORK_ERROR = 12
    PERMISSION_ERROR = 13
    STATE_ERROR = 14
    INTERNAL_ERROR = 15
    CANCELLED = 130


class LabError(Exception):
    """
    Base exception class for all RTC emulator errors.

    Provides structured error information with user-friendly messages
    and suggested actions for resolution.
    """

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """
        Initialize lab error with structured information.

        Args:
            message: User-friendly error message
            suggestion: Suggested action to resolve the error
            error_code: Exit code for the error
            details: Additional error details (shown only in verbose mode)
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def format_error(self, verbose_level: int = 0) -> str:
        """
        Format error message based on verbosity level.

        Args:
            verbose_level: 0=basic, 1=verbose, 2=debug, 3=full details

        Returns:
            Formatted error message
        """
        lines = [f"Error: {self.message}"]

        if self.suggestion:
            lines.append(f"Suggestion: {self.suggestion}")

        if verbose_level >= 1 and self.details:
            lines.append("\nDetails:")
            for key, value in self.details.items():
                lines.append(f"  {key}: {value}")

        if verbose_level >= 2 and self.cause:
            lines.append(f"\nCaused by: {type(self.cause).__name__}: {str(self.cause)}")

        if verbose_level >= 3:
            lines.append("\nStack trace:")
            if self.__traceback__ is not None:
                lines.append(''.join(traceback.format_tb(self.__traceback__)))
            else:
                lines.append("(No active exception - stack trace not available)")

        return "\n".join(lines)


# Configuration Errors

class ConfigurationError(LabError):
    """Raised when there are configuration-related issues."""

    def __init__(self, message: str, config_file: Optional[str] = None, **kwargs):
        suggestion = "Check your configuration file format and values."
        if config_file:
            suggestion += f" Configuration file: {config_file}"
            kwargs['details'] = kwargs.get('details', {})
            kwargs['details']['config_file'] = config_file
        super().__init__(
            message=message,
            suggestion=suggestion,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            **kwargs
        )


# Precondition Errors

class PreconditionError(LabError):
    """Base class for errors raised before any host state is touched."""
    pass


class UnsupportedPlatformError(PreconditionError):
    """Raised when the lab is operated on a platform without network namespaces."""

    def __init__(self, operation: str, platform: str, **kwargs):
        super().__init__(
            message=f"lab {operation} is supported only on linux: got {platform}",
            suggestion="Run rtcemu on a Linux host with iproute2 and iptables installed.",
            error_code=ErrorCode.INVALID_INPUT,
            details={"operation": operation, "platform": platform},
            **kwargs
        )


class PrivilegeError(PreconditionError):
    """Raised when the lab is operated without root privileges."""

    def __init__(self, operation: str, **kwargs):
        super().__init__(
            message=f"lab {operation} requires root privileges",
            suggestion=(
                f"This operation creates kernel network resources. Try:\n"
                f"  1. Run with sudo: sudo {' '.join(sys.argv)}\n"
                f"  2. Ensure your user has CAP_NET_ADMIN and CAP_SYS_ADMIN"
            ),
            error_code=ErrorCode.PERMISSION_ERROR,
            details={"operation": operation},
            **kwargs
        )


class MissingCommandError(PreconditionError):
    """Raised when a required external program is not on PATH."""

    def __init__(self, command: str, **kwargs):
        super().__init__(
            message=f'required command "{command}" not found',
            suggestion=(
                "Install the missing tool. On Debian/Ubuntu:\n"
                "  apt-get install iproute2 iptables procps iputils-ping"
            ),
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details={"command": command},
            **kwargs
        )


class ValidationError(PreconditionError):
    """Raised when operation input is invalid."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if field is not None:
            details.update({"field": field, "value": value})
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_INPUT,
            details=details,
            **kwargs
        )


# Conflict Errors

class LabExistsError(LabError):
    """Raised when create finds a lab (or its remains) already on the host."""

    def __init__(self, reason: str, **kwargs):
        super().__init__(
            message=f"existing lab detected ({reason})",
            suggestion="run `rtcemu destroy` and retry",
            error_code=ErrorCode.LAB_EXISTS,
            details={"reason": reason},
            **kwargs
        )


class HostProbeError(LabError):
    """Raised when live host state cannot be queried.

    Kept distinct from "resource absent": a probe that fails for any other
    reason must never be read as "nothing there".
    """

    def __init__(self, action: str, error_code: ErrorCode = ErrorCode.NETWORK_ERROR, **kwargs):
        cause = kwargs.get('cause')
        message = f"failed to {action}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message=message,
            suggestion="Verify that ip, iptables and sysctl can be run by the current user.",
            error_code=error_code,
            details={"action": action},
            **kwargs
        )


# State Access Errors

class StateError(LabError):
    """Base class for state store errors."""
    pass


class StateNotFoundError(StateError):
    """Raised when no lab state is recorded on disk."""

    def __init__(self, path: str, **kwargs):
        super().__init__(
            message="lab state not found",
            suggestion="run `rtcemu create` first",
            error_code=ErrorCode.NOT_FOUND,
            details={"state_path": path},
            **kwargs
        )


class StateAccessError(StateError):
    """Raised when the state file exists but cannot be read or written."""

    def __init__(self, message: str, path: str, **kwargs):
        super().__init__(
            message=message,
            suggestion=f"Check permissions of {path} and its parent directory.",
            error_code=ErrorCode.STATE_ERROR,
            details={"state_path": path},
            **kwargs
        )


class StateCorruptError(StateError):
    """Raised when the state file is not a valid lab record."""

    def __init__(self, path: str, parse_error: str, **kwargs):
        super().__init__(
            message=f"failed to parse state file {path}",
            suggestion=(
                "The lab state file is corrupted. Inspect it with:\n"
                f"  python3 -m json.tool {path}\n"
                "and remove leftover resources manually before deleting it."
            ),
            error_code=ErrorCode.STATE_ERROR,
            details={"state_path": path, "parse_error": parse_error},
            **kwargs
        )


# Execution Errors

class ExecutionError(LabError):
    """Base class for execution-related errors."""
    pass


class CommandExecutionError(ExecutionError):
    """Raised when an external command fails."""

    def __init__(self, command: List[str], exit_code: Optional[int], error_output: str = "", **kwargs):
        cmd_str = " ".join(command)
        message = f"{cmd_str}: {error_output}" if error_output else f"{cmd_str}: exit status {exit_code}"
        super().__init__(
            message=message,
            suggestion=(
                "The command failed to execute properly. Check:\n"
                "  1. Required tools are installed (ip, iptables, sysctl, tc, ping)\n"
                "  2. Sufficient permissions to run the command\n"
                "  3. No conflicting network configuration on the host"
            ),
            error_code=ErrorCode.NETWORK_ERROR,
            details={
                "command": cmd_str,
                "exit_code": exit_code,
                "error_output": error_output
            },
            **kwargs
        )
        self.command = list(command)
        self.exit_code = exit_code
        self.error_output = error_output


class ConnectivityCheckError(ExecutionError):
    """Raised when a freshly created node cannot reach the bridge gateway."""

    def __init__(self, node: str, target: str, **kwargs):
        cause = kwargs.get('cause')
        message = f"connectivity check failed for {node} -> {target}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message=message,
            suggestion="Check for host firewall rules dropping bridge traffic.",
            error_code=ErrorCode.NETWORK_ERROR,
            details={"node": node, "target": target},
            **kwargs
        )


class OperationCancelledError(ExecutionError):
    """Raised when the operation was cancelled before the next command."""

    def __init__(self, command: Optional[List[str]] = None, **kwargs):
        details = {}
        if command:
            details["next_command"] = " ".join(command)
        super().__init__(
            message="operation cancelled",
            suggestion="Run `rtcemu destroy` to remove any partially created resources.",
            error_code=ErrorCode.CANCELLED,
            details=details,
            **kwargs
        )


# Node Errors

class NodeNotManagedError(LabError):
    """Raised when a node name is not part of the current lab."""

    def __init__(self, node: str, managed_nodes: Optional[List[str]] = None, **kwargs):
        nodes_hint = ""
        if managed_nodes:
            nodes_hint = f"Managed nodes: {', '.join(managed_nodes)}"
        super().__init__(
            message=f'node "{node}" is not managed by current lab',
            suggestion=nodes_hint or None,
            error_code=ErrorCode.NOT_FOUND,
            details={"node": node, "managed_nodes": managed_nodes},
            **kwargs
        )


class NamespaceNotFoundError(LabError):
    """Raised when a managed node has no live network namespace."""

    def __init__(self, node: str, **kwargs):
        super().__init__(
            message=f'node "{node}" namespace not found',
            suggestion="The lab is out of sync with the host. Run `rtcemu destroy` and create it again.",
            error_code=ErrorCode.NOT_FOUND,
            details={"node": node},
            **kwargs
        )


# Error Handler Utility

class ErrorHandler:
    """Utility class for consistent error handling across the application."""

    @staticmethod
    def handle_error(error: Exception, verbose_level: int = 0) -> int:
        """
        Handle an error and return appropriate exit code.

        Args:
            error: The exception to handle
            verbose_level: Verbosity level (0-3)

        Returns:
            Exit code for the application
        """
        if isinstance(error, LabError):
            print(error.format_error(verbose_level), file=sys.stderr)
            return error.error_code

        print("Error: An unexpected error occurred", file=sys.stderr)
        print("Suggestion: This might be a bug. Please report it with the full error output.", file=sys.stderr)

        if verbose_level >= 1:
            print(f"\nError type: {type(error).__name__}", file=sys.stderr)
            print(f"Error message: {str(error)}", file=sys.stderr)

        if verbose_level >= 3:
            print("\nStack trace:", file=sys.stderr)
            traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)

        return ErrorCode.INTERNAL_ERROR
