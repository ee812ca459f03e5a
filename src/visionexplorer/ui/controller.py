"""Top-level controller: loads the model, ingests uploads and classifies them.

All blocking work runs in the InferencePool; results are folded back into
``AppState`` on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from visionexplorer.ml.preprocessing import ImageDecodeError, decode_data_url
from visionexplorer.ml.runtime import LoadOptions
from visionexplorer.ui.ingest import ingest_upload
from visionexplorer.ui.state import AppState

if TYPE_CHECKING:
    from visionexplorer.config import Settings
    from visionexplorer.ml.inference import InferencePool
    from visionexplorer.ml.runtime import ClassificationRuntime, ModelHandle, Prediction
    from visionexplorer.ui.ingest import ImageSource

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class ClassificationOutcome:
    """Result of one classification request, independent of the shared page state."""

    predictions: list[Prediction] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.predictions is not None


class VisionController:
    """Owns the page state and the model handle for one application instance."""

    def __init__(self, settings: Settings, runtime: ClassificationRuntime, pool: InferencePool) -> None:
        self.state = AppState()
        self._runtime = runtime
        self._pool = pool
        self._options = LoadOptions(version=settings.model_version, alpha=settings.model_alpha)
        self._top_k = settings.top_k
        self._load_task: asyncio.Task[ModelHandle | None] | None = None

    def start(self) -> asyncio.Task[ModelHandle | None]:
        """Kick off the model load in the background (idempotent)."""
        if self._load_task is None:
            self._load_task = asyncio.create_task(self.load_model(), name="model-load")
        return self._load_task

    async def load_model(self) -> ModelHandle | None:
        """Load the model once; on failure the model stays unavailable."""
        loop = asyncio.get_running_loop()

        def on_progress(fraction: float) -> None:
            loop.call_soon_threadsafe(self.state.report_progress, fraction)

        self.state.begin_work()
        try:
            handle = await self._pool.run(self._runtime.load, self._options, on_progress)
        except Exception as exc:
            logger.exception("Failed to load model")
            self.state.fail_model(_describe(exc))
            return None
        finally:
            self.state.end_work()

        self.state.set_model(handle)
        logger.info("Model %s ready", handle.model_name)
        return handle

    async def upload(self, data: bytes, media_type: str | None, filename: str | None = None) -> ClassificationOutcome:
        """Show an uploaded file and classify it straight away."""
        source = ingest_upload(data, media_type, filename)
        token = self.state.set_image(source)
        logger.info("Received upload %r (%s, %d bytes, token=%d)", filename, source.media_type, len(data), token)
        return await self.classify(source, token)

    async def classify(self, source: ImageSource, token: int | None = None) -> ClassificationOutcome:
        """Classify an image source.

        The outcome carries this request's own predictions or failure reason;
        the page state may already belong to a newer upload. Errors never
        propagate past this method.
        """
        model = self.state.model
        if model is None:
            return ClassificationOutcome(error="Model is not loaded")
        if token is None:
            token = self.state.request_token

        self.state.begin_work()
        try:
            image = await self._pool.run(decode_data_url, source.data_url)
            predictions = await self._pool.run(model.classify, image, self._top_k)
        except ImageDecodeError as exc:
            logger.exception("Failed to decode image")
            reason = _describe(exc)
            self.state.fail_classification(token, reason)
            return ClassificationOutcome(error=reason)
        except Exception as exc:
            logger.exception("Failed to classify image")
            reason = _describe(exc)
            self.state.fail_classification(token, reason)
            return ClassificationOutcome(error=reason)
        finally:
            self.state.end_work()

        if not self.state.apply_predictions(token, predictions):
            logger.info("Discarding predictions for superseded upload (token=%d)", token)
        return ClassificationOutcome(predictions=predictions)

    async def shutdown(self) -> None:
        """Stop a model load that is still in flight."""
        task = self._load_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Model load cancelled")
