#!/usr/bin/env -S python3 -B -u
"""
Lab environment: the host capabilities a lab operation depends on.

Every operation receives one LabEnvironment at construction time:
- config: reserved names, addresses and the state file path
- executor: external command runner (carries the cancellation token)
- store: lab state persistence
- system: platform, privilege and program lookup

LabEnvironment.from_config() wires the production implementations;
tests substitute doubles for any of them.
"""

import os
import shutil
import sys
from dataclasses import dataclass
from typing import Optional

from ..core.config_loader import LabConfig
from ..core.state_store import FileStateStore, StateStore
from ..core.structured_logging import StructuredLogger, get_logger
from ..executors.command_executor import CancellationToken, CommandExecutor, SubprocessExecutor


class SystemProbe:
    """Read-only facts about the local host."""

    def platform(self) -> str:
        return sys.platform

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def find_program(self, name: str) -> Optional[str]:
        return shutil.which(name)


@dataclass
class LabEnvironment:
    config: LabConfig
    executor: CommandExecutor
    store: StateStore
    system: SystemProbe
    verbose_level: int = 0

    @classmethod
    def from_config(cls, config: LabConfig, verbose_level: int = 0,
                    cancel_token: Optional[CancellationToken] = None) -> 'LabEnvironment':
        """Production environment: subprocess, real filesystem, real host."""
        executor = SubprocessExecutor(
            cancel_token=cancel_token,
            logger=get_logger('rtcemu.executor', verbose_level),
        )
        store = FileStateStore(config.state_path, logger=get_logger('rtcemu.state', verbose_level))
        return cls(
            config=config,
            executor=executor,
            store=store,
            system=SystemProbe(),
            verbose_level=verbose_level,
        )

    def logger(self, name: str) -> StructuredLogger:
        return get_logger(name, self.verbose_level)
