from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from config import config
from lifecycle import (
    ArtifactLifecycleManager,
    CreatedArtifact,
    InvalidInputError,
    ReclamationTimer,
    build_lifecycle_manager,
)
from processing.pdf_renderer import RenderError
from storage import Absent, BackingWriteError
from utils.logger import LoggingMiddleware, logger


executor = ThreadPoolExecutor(max_workers=config.RENDER_WORKERS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "lifecycle", None) is None:
        app.state.lifecycle = build_lifecycle_manager()

    timer = ReclamationTimer(app.state.lifecycle, config.RECLAMATION_INTERVAL_SECONDS)
    timer.start()
    try:
        yield
    finally:
        await timer.stop()
        app.state.lifecycle.shutdown()


app = FastAPI(title="Temporary PDF API", lifespan=lifespan)

app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class GenerateRequest(BaseModel):
    # Any JSON value is accepted here so that a missing or non-string text is a 400, not a 422
    text: Optional[Any] = None


def get_lifecycle(request: Request) -> ArtifactLifecycleManager:
    return request.app.state.lifecycle


def format_expiry(expires_at: datetime) -> str:
    return expires_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def public_base_url(request: Request) -> str:
    return (config.PUBLIC_BASE_URL or str(request.base_url)).rstrip("/")


async def create_from_request(payload: GenerateRequest, lifecycle: ArtifactLifecycleManager) -> CreatedArtifact:
    try:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, lifecycle.create_from_text, payload.text)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (RenderError, BackingWriteError) as e:
        logger.error(f"PDF generation error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="PDF generation failed")


async def pdf_response(artifact_id: str, lifecycle: ArtifactLifecycleManager) -> Response:
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(executor, lifecycle.fetch_artifact, artifact_id)
    if isinstance(result, Absent):
        raise HTTPException(status_code=404, detail="File not found or expired")

    headers = {"Content-Disposition": f'inline; filename="{artifact_id}.pdf"'}
    return Response(content=result, media_type="application/pdf", headers=headers)


# ------------------------------
# Routes
# ------------------------------

@app.post("/artifacts")
async def create_artifact(
    payload: GenerateRequest,
    request: Request,
    lifecycle: ArtifactLifecycleManager = Depends(get_lifecycle),
):
    """Render the text to a PDF and return a short-lived download URL."""
    created = await create_from_request(payload, lifecycle)
    return {
        "url": f"{public_base_url(request)}/artifacts/{created.artifact_id}",
        "expiresAt": format_expiry(created.expires_at),
    }


@app.get("/artifacts/{artifact_id}")
async def fetch_artifact(artifact_id: str, lifecycle: ArtifactLifecycleManager = Depends(get_lifecycle)):
    return await pdf_response(artifact_id, lifecycle)


@app.post("/api/generate-pdf")
async def generate_pdf(
    payload: GenerateRequest,
    request: Request,
    lifecycle: ArtifactLifecycleManager = Depends(get_lifecycle),
):
    """Same as POST /artifacts, answering with the temp-pdf download route."""
    created = await create_from_request(payload, lifecycle)
    return {
        "pdfUrl": f"{public_base_url(request)}/api/temp-pdf/{created.artifact_id}.pdf",
        "expiresAt": format_expiry(created.expires_at),
    }


@app.get("/api/temp-pdf/{filename}")
async def temp_pdf(filename: str, lifecycle: ArtifactLifecycleManager = Depends(get_lifecycle)):
    artifact_id = filename[:-len(".pdf")] if filename.endswith(".pdf") else filename
    return await pdf_response(artifact_id, lifecycle)


@app.get("/health")
async def health(lifecycle: ArtifactLifecycleManager = Depends(get_lifecycle)):
    return {"status": "ok", "artifacts": len(lifecycle.store)}
