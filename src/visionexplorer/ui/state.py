"""Page state owned by the controller.

Every mutation goes through one of the transition methods below; the
presenter and the JSON API only read it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visionexplorer.ml.runtime import ModelHandle, Prediction
    from visionexplorer.ui.ingest import ImageSource


@dataclass
class AppState:
    model: ModelHandle | None = None
    progress: int = 0
    image: ImageSource | None = None
    predictions: list[Prediction] = field(default_factory=list)
    request_token: int = 0
    model_error: str | None = None
    last_error: str | None = None
    _busy: int = 0

    @property
    def loading(self) -> bool:
        return self._busy > 0

    @property
    def model_ready(self) -> bool:
        return self.model is not None

    # -- busy flag ----------------------------------------------------------

    def begin_work(self) -> None:
        self._busy += 1

    def end_work(self) -> None:
        self._busy = max(0, self._busy - 1)

    # -- model lifecycle ----------------------------------------------------

    def report_progress(self, fraction: float) -> int:
        """Record load progress as a rounded percentage; never moves backwards."""
        if self.model is None:
            percent = round(min(max(fraction, 0.0), 1.0) * 100)
            self.progress = max(self.progress, percent)
        return self.progress

    def set_model(self, handle: ModelHandle) -> None:
        self.model = handle
        self.progress = 100
        self.model_error = None

    def fail_model(self, message: str) -> None:
        self.model_error = message

    # -- images and predictions ---------------------------------------------

    def set_image(self, source: ImageSource) -> int:
        """Show a new image and return the token its classification must carry."""
        self.image = source
        self.request_token += 1
        return self.request_token

    def is_current(self, token: int) -> bool:
        return token == self.request_token

    def apply_predictions(self, token: int, predictions: list[Prediction]) -> bool:
        """Replace the prediction list unless a newer upload superseded ``token``."""
        if not self.is_current(token):
            return False
        self.predictions = sorted(predictions, key=lambda p: p.probability, reverse=True)
        self.last_error = None
        return True

    def fail_classification(self, token: int, message: str) -> bool:
        # Previous predictions stay on screen.
        if not self.is_current(token):
            return False
        self.last_error = message
        return True
