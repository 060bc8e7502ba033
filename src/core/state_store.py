#!/usr/bin/env -S python3 -B -u
"""Lab State Store.

Durable record of the currently provisioned lab. The store is the only
owner of the on-disk copy of LabState:
- load() distinguishes "no lab" (StateNotFoundError) from a state file
  that exists but cannot be read or parsed
- save() is atomic: write to a temporary file, fsync, rename into place
- delete() is idempotent

The store takes no locks. Concurrent rtcemu processes are not supported.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .exceptions import StateNotFoundError, StateAccessError, StateCorruptError
from .models import LabState
from .structured_logging import StructuredLogger, get_logger


class StateStore(ABC):
    """Persistence interface used by every lab operation."""

    @abstractmethod
    def load(self) -> LabState:
        """Return the recorded lab or raise StateNotFoundError."""

    @abstractmethod
    def save(self, state: LabState) -> None:
        """Persist the lab record, replacing any previous one."""

    @abstractmethod
    def delete(self) -> None:
        """Remove the lab record; a missing record is not an error."""


class FileStateStore(StateStore):
    """JSON file backed state store at a fixed well-known path."""

    def __init__(self, path: str, logger: Optional[StructuredLogger] = None):
        """
        Args:
            path: State file location (e.g. /run/rtc-emulator/lab.json)
            logger: Optional logger
        """
        self.path = Path(path)
        self.logger = logger or get_logger(__name__)

    def load(self) -> LabState:
        """Read and validate the state file.

        Raises:
            StateNotFoundError: If the file does not exist
            StateAccessError: If the file exists but cannot be read
            StateCorruptError: If the file is not a valid lab record
        """
        try:
            with open(self.path, 'r') as f:
                raw = f.read()
        except FileNotFoundError:
            raise StateNotFoundError(str(self.path))
        except OSError as e:
            raise StateAccessError(f"failed to read state file {self.path}: {e}", str(self.path), cause=e)

        try:
            state = LabState.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StateCorruptError(str(self.path), str(e), cause=e)

        self.logger.debug("Loaded lab state", path=str(self.path), nodes=len(state.nodes))
        return state

    def save(self, state: LabState) -> None:
        """Write the state file atomically with fsync.

        Process:
        1. Create the parent directory (0755)
        2. Write to <path>.tmp with mode 0600 and fsync it
        3. Atomic rename to target

        Raises:
            StateAccessError: On any filesystem error
        """
        temp_path = self.path.with_name(self.path.name + '.tmp')

        try:
            self.path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise StateAccessError(f"failed to create state dir for {self.path}: {e}", str(self.path), cause=e)

        try:
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w') as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise StateAccessError(f"failed to write state temp file {temp_path}: {e}", str(self.path), cause=e)

        try:
            temp_path.replace(self.path)
        except OSError as e:
            try:
                temp_path.unlink()
            except OSError as cleanup_error:
                self.logger.debug(f"Cannot remove {temp_path}: {cleanup_error}")
            raise StateAccessError(f"failed to commit state file {self.path}: {e}", str(self.path), cause=e)

        self.logger.debug("Saved lab state", path=str(self.path), nodes=len(state.nodes))

    def delete(self) -> None:
        """Remove the state file if present.

        Raises:
            StateAccessError: If the file exists but cannot be removed
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StateAccessError(f"failed to remove state file {self.path}: {e}", str(self.path), cause=e)
        self.logger.debug("Removed lab state", path=str(self.path))
