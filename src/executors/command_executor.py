#!/usr/bin/env -S python3 -B -u
"""
Command Executor Module - External Program Invocation

Every lab operation talks to the host exclusively through the
CommandExecutor interface:

- run(program, *args): succeed silently or raise CommandExecutionError
  carrying the program's diagnostic output (stdout and stderr combined)
- output(program, *args): return captured standard output or raise
  CommandExecutionError carrying standard error

A CancellationToken is checked before each invocation. Once cancelled,
no further command starts; a command already running is not interrupted.
Compensating actions run inside shielded() so that a cancelled create can
still undo what it already did.
"""

import shlex
import subprocess
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import List, Optional

from ..core.exceptions import CommandExecutionError, OperationCancelledError
from ..core.structured_logging import StructuredLogger, get_logger


class CancellationToken:
    """Cooperative cancellation flag shared by one operation."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, command: Optional[List[str]] = None) -> None:
        if self._event.is_set():
            raise OperationCancelledError(command)


class CommandExecutor(ABC):
    """
    Abstract external command runner.

    Subclasses implement _run() and _output(); cancellation and logging
    are handled here so that every implementation honours them.
    """

    def __init__(self, cancel_token: Optional[CancellationToken] = None,
                 logger: Optional[StructuredLogger] = None):
        self.cancel_token = cancel_token or CancellationToken()
        self.logger = logger or get_logger(__name__)
        self._shield_depth = 0

    @contextmanager
    def shielded(self):
        """Run the enclosed commands even if the token is cancelled."""
        self._shield_depth += 1
        try:
            yield self
        finally:
            self._shield_depth -= 1

    def _check_cancelled(self, argv: List[str]) -> None:
        if self._shield_depth == 0:
            self.cancel_token.raise_if_cancelled(argv)

    def run(self, program: str, *args: str) -> None:
        """Run a command for its side effect."""
        argv = [program, *args]
        self._check_cancelled(argv)
        try:
            self._run(argv)
        except CommandExecutionError as e:
            self._log_result(argv, e)
            raise
        self._log_result(argv)

    def output(self, program: str, *args: str) -> str:
        """Run a command and return its standard output."""
        argv = [program, *args]
        self._check_cancelled(argv)
        try:
            out = self._output(argv)
        except CommandExecutionError as e:
            self._log_result(argv, e)
            raise
        self._log_result(argv)
        self.logger.trace("Command output", command=shlex.join(argv), stdout=out)
        return out

    def _log_result(self, argv: List[str], error: Optional[CommandExecutionError] = None) -> None:
        if error is None:
            self.logger.debug(f"ok: {shlex.join(argv)}")
        else:
            self.logger.debug(f"failed: {shlex.join(argv)}", exit_code=error.exit_code, error=error.error_output)

    @abstractmethod
    def _run(self, argv: List[str]) -> None:
        """Execute argv; raise CommandExecutionError on failure."""

    @abstractmethod
    def _output(self, argv: List[str]) -> str:
        """Execute argv and return stdout; raise CommandExecutionError on failure."""


class SubprocessExecutor(CommandExecutor):
    """Production executor using subprocess without a shell."""

    def __init__(self, cancel_token: Optional[CancellationToken] = None,
                 logger: Optional[StructuredLogger] = None,
                 timeout: Optional[float] = None):
        """
        Args:
            cancel_token: Token checked before every command
            logger: Logger for command tracing
            timeout: Optional per-command timeout in seconds
        """
        super().__init__(cancel_token, logger)
        self.timeout = timeout

    def _invoke(self, argv: List[str], merge_stderr: bool) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                argv,
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise CommandExecutionError(argv, None, str(e), cause=e)
        except subprocess.TimeoutExpired as e:
            raise CommandExecutionError(argv, None, f"timed out after {e.timeout}s", cause=e)

    def _run(self, argv: List[str]) -> None:
        result = self._invoke(argv, merge_stderr=True)
        if result.returncode != 0:
            raise CommandExecutionError(argv, result.returncode, (result.stdout or "").strip())

    def _output(self, argv: List[str]) -> str:
        result = self._invoke(argv, merge_stderr=False)
        if result.returncode != 0:
            raise CommandExecutionError(argv, result.returncode, (result.stderr or "").strip())
        return result.stdout or ""
