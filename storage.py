from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Union
from uuid import uuid4

from config import config
from utils.logger import logger


class BackingWriteError(Exception):
    """Artifact bytes could not be persisted."""


class BackingReadError(Exception):
    """Artifact bytes are missing or unreadable."""


class AbsenceReason(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CORRUPTED = "corrupted"


@dataclass(frozen=True)
class Absent:
    """Returned by lookups that have no bytes to hand back."""

    reason: AbsenceReason


@dataclass(frozen=True)
class StoredArtifact:
    """Metadata for one stored artifact. The bytes live in the backing."""

    artifact_id: str
    location: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------
# Byte backings
# ------------------------------

class DiskBacking:
    """Stores each artifact as ``<directory>/<artifact_id>.pdf``."""

    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def write(self, artifact_id: str, content: bytes) -> str:
        path = os.path.join(self.directory, f"{artifact_id}.pdf")
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".part")
        except OSError as e:
            raise BackingWriteError(f"Could not write {artifact_id}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise BackingWriteError(f"Could not write {artifact_id}: {e}") from e
        return path

    def read(self, location: str) -> bytes:
        try:
            with open(location, "rb") as f:
                return f.read()
        except OSError as e:
            raise BackingReadError(f"Could not read {location}: {e}") from e

    def delete(self, location: str) -> None:
        try:
            os.remove(location)
        except FileNotFoundError:
            pass


class MemoryBacking:
    """Keeps artifact bytes in process memory, keyed by artifact id."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def write(self, artifact_id: str, content: bytes) -> str:
        with self._lock:
            self._blobs[artifact_id] = bytes(content)
        return artifact_id

    def read(self, location: str) -> bytes:
        with self._lock:
            content = self._blobs.get(location)
        if content is None:
            raise BackingReadError(f"No bytes stored for {location}")
        return content

    def delete(self, location: str) -> None:
        with self._lock:
            self._blobs.pop(location, None)


def build_backing(name: str = config.STORAGE_BACKEND):
    if name == "disk":
        return DiskBacking(config.ARTIFACT_DIR)
    if name == "memory":
        return MemoryBacking()
    if name == "cloudinary":
        from processing.cloudinary import CloudinaryBacking

        return CloudinaryBacking(folder=config.CLOUDINARY_FOLDER)
    raise ValueError(f"Unknown storage backend: {name}")


# ------------------------------
# Artifact store
# ------------------------------

class ArtifactStore:
    """
    Maps artifact ids to metadata and owns the bytes behind them.

    The id -> metadata map is guarded by a single lock. Backing I/O always
    happens outside the lock, and bytes are deleted before the metadata entry
    describing them is removed. Expiry is computed from the stored timestamps
    on every access, so a lookup never depends on a sweep having run.

    Reclaimed ids leave a tombstone for one further TTL so that lookups keep
    reporting EXPIRED rather than NOT_FOUND after a sweep.
    """

    def __init__(
        self,
        backing,
        ttl: timedelta = timedelta(seconds=config.ARTIFACT_TTL_SECONDS),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backing = backing
        self._ttl = ttl
        self._clock = clock
        self._items: Dict[str, StoredArtifact] = {}
        self._tombstones: Dict[str, datetime] = {}  # artifact_id -> expires_at
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _mint_id(self) -> str:
        with self._lock:
            while True:
                artifact_id = str(uuid4())
                if artifact_id not in self._items and artifact_id not in self._tombstones:
                    return artifact_id

    def put(self, content: bytes) -> StoredArtifact:
        """Persist bytes and register them with an expiry. Raises BackingWriteError."""
        artifact_id = self._mint_id()
        location = self._backing.write(artifact_id, content)

        created_at = self._clock()
        artifact = StoredArtifact(
            artifact_id=artifact_id,
            location=location,
            created_at=created_at,
            expires_at=created_at + self._ttl,
        )
        with self._lock:
            self._items[artifact_id] = artifact
        return artifact

    def get(self, artifact_id: str) -> Union[bytes, Absent]:
        with self._lock:
            artifact = self._items.get(artifact_id)
            reclaimed = artifact_id in self._tombstones
        if artifact is None:
            if reclaimed:
                return Absent(AbsenceReason.EXPIRED)
            return Absent(AbsenceReason.NOT_FOUND)

        if artifact.is_expired(self._clock()):
            self._remove(artifact, expired=True)
            return Absent(AbsenceReason.EXPIRED)

        try:
            return self._backing.read(artifact.location)
        except BackingReadError as e:
            # A sweep may have reclaimed the bytes between the expiry check and the read
            if artifact.is_expired(self._clock()):
                self._remove(artifact, expired=True)
                return Absent(AbsenceReason.EXPIRED)
            if not self._remove(artifact, expired=False):
                # Removed by another caller (sweep, clear) while the read was in flight
                with self._lock:
                    reclaimed = artifact_id in self._tombstones
                return Absent(AbsenceReason.EXPIRED if reclaimed else AbsenceReason.NOT_FOUND)
            logger.warning(f"Artifact {artifact_id} lost its bytes, dropping stale entry: {e}")
            return Absent(AbsenceReason.CORRUPTED)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Remove every entry expired at ``now``. Returns how many this call removed.
        A naive ``now`` is taken to be UTC.
        """
        if now is None:
            now = self._clock()
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        with self._lock:
            expired: List[StoredArtifact] = [
                artifact for artifact in self._items.values() if artifact.is_expired(now)
            ]
            stale = [
                artifact_id
                for artifact_id, expires_at in self._tombstones.items()
                if expires_at + self._ttl <= now
            ]
            for artifact_id in stale:
                del self._tombstones[artifact_id]

        removed = 0
        for artifact in expired:
            if self._remove(artifact, expired=True):
                removed += 1
        return removed

    def clear(self) -> int:
        with self._lock:
            artifacts = list(self._items.values())
            self._tombstones.clear()

        removed = 0
        for artifact in artifacts:
            if self._remove(artifact, expired=False):
                removed += 1
        return removed

    def _remove(self, artifact: StoredArtifact, expired: bool) -> bool:
        """Delete bytes, then drop the metadata entry if it is still this artifact's."""
        try:
            self._backing.delete(artifact.location)
        except Exception as e:
            logger.warning(f"Could not delete bytes for artifact {artifact.artifact_id}: {e}")

        with self._lock:
            if self._items.get(artifact.artifact_id) is not artifact:
                return False
            del self._items[artifact.artifact_id]
            if expired:
                self._tombstones[artifact.artifact_id] = artifact.expires_at
        return True
