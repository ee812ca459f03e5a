"""Render-ready view of the page state. No business logic lives here."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visionexplorer.ui.state import AppState


@dataclass(frozen=True)
class ResultRow:
    label: str
    percent: str


@dataclass(frozen=True)
class PageView:
    upload_enabled: bool
    camera_enabled: bool
    show_progress: bool
    progress: int
    progress_text: str
    image_url: str | None
    results: list[ResultRow]
    error: str | None


def format_probability(probability: float) -> str:
    """Format a probability in [0, 1] as a one-decimal percentage, e.g. ``82.0%``."""
    return f"{probability * 100:.1f}%"


def progress_text(percent: int) -> str:
    return f"Loading AI Model... {percent}%"


def build_view(state: AppState, *, show_errors: bool = True) -> PageView:
    error: str | None = None
    if show_errors:
        if state.model_error is not None:
            error = f"Failed to load model: {state.model_error}"
        elif state.last_error is not None:
            error = f"Failed to classify image: {state.last_error}"

    return PageView(
        upload_enabled=state.model_ready and not state.loading,
        camera_enabled=False,
        show_progress=not state.model_ready,
        progress=state.progress,
        progress_text=progress_text(state.progress),
        image_url=state.image.data_url if state.image is not None else None,
        results=[ResultRow(label=p.label, percent=format_probability(p.probability)) for p in state.predictions],
        error=error,
    )
