"""HTML page routes."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from visionexplorer.ui.presenter import build_view

if TYPE_CHECKING:
    from visionexplorer.config import Settings
    from visionexplorer.ui.controller import VisionController

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
PROGRESS_REFRESH_SECONDS = 1

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter()


@router.get("/", response_class=HTMLResponse, summary="Vision Explorer page")
async def index(request: Request) -> HTMLResponse:
    """Render the upload page for the current state."""
    settings: Settings = request.app.state.settings
    controller: VisionController = request.app.state.controller
    state = controller.state

    view = build_view(state, show_errors=settings.show_errors)
    # Poll while the model is still loading; a failed load never recovers.
    refresh = PROGRESS_REFRESH_SECONDS if not state.model_ready and state.model_error is None else None
    return templates.TemplateResponse(
        request,
        "index.html",
        {"view": view, "refresh_seconds": refresh},
    )


@router.post("/upload", response_class=RedirectResponse, summary="Upload and classify an image")
async def upload_image(request: Request, file: UploadFile) -> RedirectResponse:
    """Store the uploaded image, classify it, and send the browser back to the page."""
    controller: VisionController = request.app.state.controller
    await controller.upload(await file.read(), file.content_type, file.filename)
    return RedirectResponse(url=request.url_for("index"), status_code=status.HTTP_303_SEE_OTHER)
