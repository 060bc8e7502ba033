#!/usr/bin/env -S python3 -B -u
"""Preflight checks shared by every lab operation."""

from typing import Iterable

from ..core.exceptions import MissingCommandError, PrivilegeError, UnsupportedPlatformError
from .environment import SystemProbe


CREATE_COMMANDS = ('ip', 'sysctl', 'iptables', 'ping')
APPLY_COMMANDS = ('ip', 'tc')
SHOW_COMMANDS = ('ip', 'tc')
DESTROY_COMMANDS = ('ip', 'iptables')


class PreflightChecker:
    """Validates platform, privilege and required programs, in that order."""

    def __init__(self, system: SystemProbe):
        self.system = system

    def check(self, operation: str, commands: Iterable[str]) -> None:
        """
        Args:
            operation: Operation name used in error messages (create, apply, ...)
            commands: Programs that must be found on PATH

        Raises:
            UnsupportedPlatformError: Not running on Linux
            PrivilegeError: Not running as root
            MissingCommandError: A required program is missing
        """
        platform = self.system.platform()
        if not platform.startswith('linux'):
            raise UnsupportedPlatformError(operation, platform)
        if not self.system.is_root():
            raise PrivilegeError(operation)
        for command in commands:
            if not self.system.find_program(command):
                raise MissingCommandError(command)
