from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from config import config
from processing.pdf_renderer import RenderError, render_text_pdf
from storage import Absent, AbsenceReason, ArtifactStore, build_backing
from utils.logger import logger


class InvalidInputError(ValueError):
    """Creation was requested without usable text."""


@dataclass(frozen=True)
class CreatedArtifact:
    artifact_id: str
    expires_at: datetime


class ArtifactLifecycleManager:
    """
    Request-facing contract over an ArtifactStore.

    Reclamation has two independent callers: every creation sweeps
    opportunistically, and a ReclamationTimer sweeps on a fixed interval.
    """

    def __init__(
        self,
        store: ArtifactStore,
        renderer: Callable[[str], bytes] = render_text_pdf,
        max_text_length: int = config.MAX_TEXT_LENGTH,
    ) -> None:
        self.store = store
        self._renderer = renderer
        self._max_text_length = max_text_length

    def create_artifact(self, rendered: bytes) -> CreatedArtifact:
        artifact = self.store.put(rendered)
        logger.info(f"Stored artifact {artifact.artifact_id}, expires at {artifact.expires_at.isoformat()}")
        self.run_reclamation()
        return CreatedArtifact(artifact_id=artifact.artifact_id, expires_at=artifact.expires_at)

    def create_from_text(self, text) -> CreatedArtifact:
        """Validate, render and store. Raises InvalidInputError, RenderError or BackingWriteError."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Text is required")
        if len(text) > self._max_text_length:
            raise InvalidInputError(f"Text exceeds {self._max_text_length} characters")

        try:
            rendered = self._renderer(text)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"PDF generation failed: {str(e)}") from e

        return self.create_artifact(rendered)

    def fetch_artifact(self, artifact_id: str) -> Union[bytes, Absent]:
        result = self.store.get(artifact_id)
        if isinstance(result, Absent) and result.reason != AbsenceReason.CORRUPTED:
            logger.debug(f"Artifact {artifact_id} unavailable: {result.reason.value}")
        return result

    def run_reclamation(self, now: Optional[datetime] = None) -> int:
        removed = self.store.sweep(now)
        if removed:
            logger.info(f"Reclaimed {removed} expired artifact(s)")
        return removed

    def shutdown(self) -> int:
        removed = self.store.clear()
        logger.info(f"Lifecycle manager shut down, discarded {removed} artifact(s)")
        return removed


class ReclamationTimer:
    """Runs ``run_reclamation`` every ``interval_seconds`` on the event loop's executor."""

    def __init__(self, manager: ArtifactLifecycleManager, interval_seconds: float = config.RECLAMATION_INTERVAL_SECONDS):
        self._manager = manager
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self._interval)
            try:
                await loop.run_in_executor(None, self._manager.run_reclamation)
            except Exception as e:
                logger.error(f"Reclamation pass failed: {str(e)}", exc_info=True)


def build_lifecycle_manager() -> ArtifactLifecycleManager:
    store = ArtifactStore(
        build_backing(config.STORAGE_BACKEND),
        ttl=timedelta(seconds=config.ARTIFACT_TTL_SECONDS),
    )
    logger.info(
        f"Artifact store ready: backend={config.STORAGE_BACKEND}, ttl={config.ARTIFACT_TTL_SECONDS}s"
    )
    return ArtifactLifecycleManager(store)
