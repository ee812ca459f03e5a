"""Shared fakes for the runtime capability interface."""

from __future__ import annotations

import io
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

import pytest
from PIL import Image

from visionexplorer.config import Settings
from visionexplorer.ml.inference import InferencePool
from visionexplorer.ml.runtime import LoadOptions, Prediction
from visionexplorer.ui.controller import VisionController

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

CAT_PREDICTIONS = [
    Prediction("Egyptian cat", 0.82),
    Prediction("tabby, tabby cat", 0.11),
    Prediction("tiger cat", 0.04),
    Prediction("lynx, catamount", 0.02),
    Prediction("Persian cat", 0.005),
    Prediction("Siamese cat, Siamese", 0.003),
]


class FakeHandle:
    """Returns canned predictions; optionally blocks or fails calls for a given image width."""

    def __init__(self, predictions: list[Prediction] | None = None) -> None:
        self.predictions = predictions if predictions is not None else list(CAT_PREDICTIONS)
        self.by_width: dict[int, list[Prediction]] = {}
        self.gates: dict[int, threading.Event] = {}
        self.started: dict[int, threading.Event] = {}
        self.failures: dict[int, Exception] = {}
        self.calls: list[tuple[tuple[int, ...], int]] = []

    @property
    def model_name(self) -> str:
        return "fake_mobilenet"

    def classify(self, image: NDArray[np.uint8], top_k: int) -> list[Prediction]:
        self.calls.append((tuple(image.shape), top_k))
        width = image.shape[1]
        if width in self.started:
            self.started[width].set()
        if width in self.gates:
            self.gates[width].wait(timeout=5)
        if width in self.failures:
            raise self.failures[width]
        ranked = sorted(self.by_width.get(width, self.predictions), key=lambda p: p.probability, reverse=True)
        return ranked[:top_k]


class FakeRuntime:
    """Reports a fixed progress sequence, then returns a FakeHandle (or raises)."""

    def __init__(
        self,
        handle: FakeHandle | None = None,
        progress: tuple[float, ...] = (0.10, 0.45, 0.80, 1.0),
        error: Exception | None = None,
    ) -> None:
        self.handle = handle or FakeHandle()
        self.progress = progress
        self.error = error
        self.loads: list[LoadOptions] = []

    def load(self, options: LoadOptions, on_progress: Callable[[float], None]) -> FakeHandle:
        self.loads.append(options)
        for fraction in self.progress:
            on_progress(fraction)
        if self.error is not None:
            raise self.error
        return self.handle


def png_bytes(width: int = 32, height: int = 24, color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": "/tmp/visionexplorer_test_models",
        "max_concurrent": 2,
        "top_k": 5,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def pool(settings: Settings) -> Iterator[InferencePool]:
    inference_pool = InferencePool(settings)
    yield inference_pool
    inference_pool.shutdown()


@pytest.fixture()
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture()
def controller(settings: Settings, fake_runtime: FakeRuntime, pool: InferencePool) -> VisionController:
    return VisionController(settings, fake_runtime, pool)
