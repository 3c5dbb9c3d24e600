"""Filesystem lock backend based on exclusive lease files.

Each lock name maps to ``{base_path}/{name}.lock``. A lease is written in full
to a private temporary file and then published with ``os.link``, which fails
if the lease file already exists, so a lease is never visible half-written and
exactly one participant on a shared filesystem can publish it. The file
records the owner token and a wall-clock expiry.

Removing a lease (release or takeover of an expired one) first renames the
file to a private name and checks that the moved file is the lease that was
inspected; a lease published in between is linked back in place.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import override

from sequencer.lock.base import LockBackend, LockHandle

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class _Lease:
    inode: int
    token: str | None
    """None when the file content could not be parsed."""

    expires_at: float


class FilesystemLockBackend(LockBackend):
    """Lease files shared by every process that can see ``base_path``."""

    def __init__(self, base_path: Path) -> None:
        """Initialise the backend.

        Args:
            base_path: Directory holding lease files; created on first use.

        """
        self._base_path = base_path

    def _lease_path(self, name: str) -> Path:
        return self._base_path / f"{_UNSAFE_CHARS.sub('_', name)}.lock"

    def _read_lease(self, path: Path, ttl: float) -> _Lease | None:
        """Read a lease together with the inode it was read from.

        An unreadable lease counts as held until its modification time plus
        ``ttl`` has passed.
        """
        try:
            with path.open() as f:
                stat = os.fstat(f.fileno())
                content = f.read()
        except FileNotFoundError:
            return None

        try:
            data = json.loads(content)
            token = data["token"]
            expires_at = float(data["expires_at"])
        except (ValueError, TypeError, KeyError):
            logger.warning("Lock lease %s is unreadable", path)
            return _Lease(inode=stat.st_ino, token=None, expires_at=stat.st_mtime + ttl)
        return _Lease(inode=stat.st_ino, token=str(token), expires_at=expires_at)

    def _publish(self, path: Path, token: str, ttl: float) -> bool:
        staging = path.with_name(f"{path.name}.{token}.tmp")
        staging.write_text(json.dumps({"token": token, "expires_at": time.time() + ttl}))
        try:
            os.link(staging, path)
        except FileExistsError:
            return False
        finally:
            staging.unlink(missing_ok=True)
        return True

    def _remove(self, path: Path, lease: _Lease) -> bool:
        """Remove ``lease`` from ``path`` unless another lease replaced it.

        Returns:
            True when the inspected lease was removed (or was already gone).

        """
        grave = path.with_name(f"{path.name}.{uuid.uuid4().hex}.removed")
        try:
            os.rename(path, grave)
        except FileNotFoundError:
            return True
        try:
            if os.stat(grave).st_ino == lease.inode:
                return True
            try:
                os.link(grave, path)
            except FileExistsError:
                logger.warning("Lock lease %s was replaced while being restored", path)
            return False
        finally:
            grave.unlink(missing_ok=True)

    @override
    def try_lock(self, name: str, ttl: float) -> LockHandle | None:
        self._base_path.mkdir(parents=True, exist_ok=True)
        path = self._lease_path(name)
        token = uuid.uuid4().hex

        if self._publish(path, token, ttl):
            return LockHandle(name=name, token=token, ttl=ttl)

        lease = self._read_lease(path, ttl)
        if lease is not None and lease.expires_at > time.time():
            return None

        if lease is not None:
            logger.info("Taking over expired lock lease '%s'", name)
            if not self._remove(path, lease):
                return None
        if self._publish(path, token, ttl):
            return LockHandle(name=name, token=token, ttl=ttl)
        return None

    @override
    def release(self, handle: LockHandle) -> None:
        path = self._lease_path(handle.name)
        lease = self._read_lease(path, handle.ttl)
        if lease is not None and lease.token == handle.token:
            self._remove(path, lease)
