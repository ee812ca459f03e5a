"""Capability interface for pretrained classification runtimes.

The web layer only ever talks to these two protocols, so it can be driven by
the ONNX MobileNet runtime in production and by a fake in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray


@dataclass(frozen=True)
class Prediction:
    """A single classification prediction."""

    label: str
    probability: float


@dataclass(frozen=True)
class LoadOptions:
    """Which pretrained model variant to load."""

    version: int = 2
    alpha: float = 1.0


class ModelHandle(Protocol):
    """Protocol for a loaded image classifier."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def classify(self, image: NDArray[np.uint8], top_k: int) -> list[Prediction]:
        """Classify an image and return the top-k predictions.

        Args:
            image: HxWx3 RGB uint8 array.
            top_k: Maximum number of predictions to return.

        Returns:
            Predictions sorted by probability (descending).
        """
        ...


class ClassificationRuntime(Protocol):
    """Protocol for something that can produce a loaded classifier."""

    def load(self, options: LoadOptions, on_progress: Callable[[float], None]) -> ModelHandle:
        """Load a model, reporting progress fractions in [0, 1].

        Blocking; callers run it off the event loop.
        """
        ...


def top_k_predictions(labels: list[str], probabilities: NDArray[np.float32], top_k: int) -> list[Prediction]:
    """Pick the k most probable labels, highest first."""
    k = min(top_k, len(labels))
    if k <= 0:
        return []
    order = np.argsort(-np.asarray(probabilities), kind="stable")[:k]
    return [Prediction(label=labels[i], probability=float(probabilities[i])) for i in order]
