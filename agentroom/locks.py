"""Process-liveness-checked agent locks backed by lock files."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterable
from pathlib import Path

from agentroom.schemas import now_iso

logger = logging.getLogger(__name__)

# An unreadable lock file younger than this may belong to a writer still starting up
UNREADABLE_LOCK_GRACE = 5.0  # seconds


class AgentLockedError(Exception):
    """Raised when an agent is already locked by another live process."""

    def __init__(self, agent_name: str, owner_pid: int | None = None):
        self.agent_name = agent_name
        self.owner_pid = owner_pid
        detail = f" (pid {owner_pid})" if owner_pid else ""
        super().__init__(f"{agent_name} is currently busy in another session{detail}")


def is_process_alive(pid: int) -> bool:
    """Check whether a process with the given pid exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user
        return True
    return True


class AgentLockManager:
    """Single-owner, non-blocking mutex per agent name.

    A lock is a file holding the owner's pid. A lock whose owner is no longer
    running is stale: it is removed as a side effect of checking it.
    """

    def __init__(self, lock_dir: Path | str, pid: int | None = None):
        """Initialize the lock manager.

        Args:
            lock_dir: Directory holding one ``<agent>.lock`` file per lock
            pid: Owner identity written into new locks (defaults to this process)
        """
        self.lock_dir = Path(lock_dir)
        self.pid = pid if pid is not None else os.getpid()
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.lock_dir / f"{name.lower()}.lock"

    def owner(self, name: str) -> int | None:
        """Return the pid recorded in the lock file, or None."""
        path = self._path(name)
        try:
            data = json.loads(path.read_text())
            return int(data["pid"])
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Unreadable lock file {path}")
            return None

    @staticmethod
    def _is_recent(path: Path) -> bool:
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return False
        return age < UNREADABLE_LOCK_GRACE

    def is_locked(self, name: str) -> bool:
        """Check whether ``name`` is held by a live process, clearing stale locks."""
        path = self._path(name)
        if not path.exists():
            return False

        pid = self.owner(name)
        if pid is not None and is_process_alive(pid):
            return True
        if pid is None and self._is_recent(path):
            return True

        logger.info(f"Removing stale lock for {name} (pid {pid})")
        path.unlink(missing_ok=True)
        return False

    def lock(self, name: str) -> None:
        """Acquire the lock for ``name`` or fail immediately.

        Re-locking an agent this process already owns is a no-op.

        Raises:
            AgentLockedError: If another live process holds the lock
        """
        if self.is_locked(name):
            pid = self.owner(name)
            if pid == self.pid:
                return
            raise AgentLockedError(name, pid)

        record = json.dumps({"pid": self.pid, "agent": name, "acquiredAt": now_iso()})
        path = self._path(name)
        tmp = path.with_name(f"{path.name}.{self.pid}.tmp")
        tmp.write_text(record)
        try:
            # The lock appears complete or not at all; link fails if it exists
            os.link(tmp, path)
        except FileExistsError as e:
            raise AgentLockedError(name, self.owner(name)) from e
        finally:
            tmp.unlink(missing_ok=True)
        logger.debug(f"Locked {name} for pid {self.pid}")

    def unlock(self, name: str) -> None:
        """Release the lock for ``name``. Unlocking an unlocked name is a no-op."""
        self._path(name).unlink(missing_ok=True)
        logger.debug(f"Unlocked {name}")


class LockScope:
    """Holds a set of agent locks and releases all of them on exit.

    Acquisition is all-or-nothing: if any agent is already locked, the locks
    taken so far are released and AgentLockedError propagates.
    """

    def __init__(self, locks: AgentLockManager, names: Iterable[str] = ()):
        self.locks = locks
        self._initial = list(names)
        self.held: list[str] = []

    def __enter__(self) -> LockScope:
        try:
            for name in self._initial:
                self.acquire(name)
        except AgentLockedError:
            self.release_all()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()

    def acquire(self, name: str) -> None:
        self.locks.lock(name)
        if name not in self.held:
            self.held.append(name)

    def release(self, name: str) -> None:
        self.locks.unlock(name)
        if name in self.held:
            self.held.remove(name)

    def release_all(self) -> None:
        for name in list(self.held):
            self.release(name)
