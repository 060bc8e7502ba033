#!/usr/bin/env -S python3 -B -u
"""Rollback stack for lab provisioning.

Each provisioning step that creates a host resource records the command
that undoes it. On failure the recorded actions are executed in reverse
order. Every action is attempted independently: a failing compensator is
logged and reported but never stops the remaining ones.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..core.exceptions import LabError
from ..core.structured_logging import StructuredLogger, get_logger
from ..executors.command_executor import CommandExecutor
from .diagnostics import is_link_not_found, is_namespace_not_found, is_rule_not_found


ABSENT_LINK = 'link'
ABSENT_NAMESPACE = 'namespace'
ABSENT_RULE = 'rule'

_ABSENT_CLASSIFIERS = {
    ABSENT_LINK: is_link_not_found,
    ABSENT_NAMESPACE: is_namespace_not_found,
    ABSENT_RULE: is_rule_not_found,
}


@dataclass(frozen=True)
class CompensatingAction:
    """Command that reverses one provisioning step.

    absent_kind names the diagnostic classifier used to recognise an
    already removed target, which counts as success.
    """
    description: str
    argv: Tuple[str, ...]
    absent_kind: Optional[str] = None

    def is_absent_error(self, error: Exception) -> bool:
        classifier = _ABSENT_CLASSIFIERS.get(self.absent_kind)
        return classifier is not None and classifier(error)


class RollbackStack:
    """Ordered list of compensating actions for one create call."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or get_logger(__name__)
        self.actions: List[CompensatingAction] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self.actions)

    def push(self, description: str, *argv: str, absent_kind: Optional[str] = None) -> CompensatingAction:
        """Record the undo command for a step that just succeeded."""
        action = CompensatingAction(description, tuple(argv), absent_kind)
        self.actions.append(action)
        self.logger.trace("Recorded rollback action", description=description, argv=" ".join(argv))
        return action

    def commit(self) -> None:
        """Keep everything that was created (clear rollback actions)."""
        self.committed = True
        self.actions.clear()

    def rollback(self, executor: CommandExecutor) -> List[str]:
        """Execute all recorded actions in reverse order.

        Runs shielded from cancellation.

        Returns:
            Descriptions of the compensating actions that failed
        """
        if self.committed:
            return []

        failures = []
        with executor.shielded():
            for action in reversed(self.actions):
                try:
                    executor.run(*action.argv)
                except LabError as e:
                    if action.is_absent_error(e):
                        self.logger.debug(f"Already gone: {action.description}")
                        continue
                    self.logger.error(f"Rollback failed for {action.description}", error=str(e))
                    failures.append(f"{action.description}: {e}")
                    continue
                self.logger.info(f"Rolled back: {action.description}")

        self.actions.clear()
        return failures
