"""MobileNet classifier on ONNX Runtime.

Implementations of the runtime protocols: ``OnnxMobileNetRuntime.load``
downloads and opens a MobileNet export, ``OnnxMobileNet.classify`` runs it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from visionexplorer.ml.preprocessing import preprocess_for_classification
from visionexplorer.ml.runtime import top_k_predictions

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from visionexplorer.ml.model_manager import ModelManager, ModelSpec
    from visionexplorer.ml.runtime import LoadOptions, Prediction

logger = logging.getLogger(__name__)

# Share of the reported progress taken by the weight download; session
# creation and label loading cover the remainder.
DOWNLOAD_PROGRESS_SHARE = 0.9


def softmax(logits: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return (exp / exp.sum()).astype(np.float32)


class OnnxMobileNet:
    """A loaded MobileNet session plus its label map."""

    def __init__(self, spec: ModelSpec, session: InferenceSession, labels: list[str]) -> None:
        self._spec = spec
        self._session = session
        self._labels = labels
        self._input_name = session.get_inputs()[0].name

    @property
    def model_name(self) -> str:
        return self._spec.name

    def classify(self, image: NDArray[np.uint8], top_k: int) -> list[Prediction]:
        tensor = preprocess_for_classification(image, size=self._spec.input_size)
        logits = self._session.run(None, {self._input_name: tensor})[0]
        probabilities = softmax(np.asarray(logits, dtype=np.float32).reshape(-1))
        if probabilities.shape[0] != len(self._labels):
            raise RuntimeError(
                f"Model {self._spec.name} produced {probabilities.shape[0]} scores for {len(self._labels)} labels"
            )
        return top_k_predictions(self._labels, probabilities, top_k)


class OnnxMobileNetRuntime:
    """Loads MobileNet variants through a model manager."""

    def __init__(self, model_manager: ModelManager) -> None:
        self._models = model_manager

    def load(self, options: LoadOptions, on_progress: Callable[[float], None]) -> OnnxMobileNet:
        spec = self._models.resolve(options.version, options.alpha)
        logger.info("Loading %s (version=%s, alpha=%s)", spec.name, options.version, options.alpha)

        on_progress(0.0)
        self._models.ensure_downloaded(spec.name, lambda fraction: on_progress(fraction * DOWNLOAD_PROGRESS_SHARE))
        labels = self._models.load_labels(spec.name)
        session = self._models.get_session(spec.name)
        on_progress(1.0)

        return OnnxMobileNet(spec, session, labels)
