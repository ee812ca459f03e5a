"""Model manager: download, load and cache MobileNet ONNX models.

Handles resolving a (version, alpha) pair to a registry entry, downloading
weights from HuggingFace with byte-level progress, reading the label map,
and creating and caching ONNX InferenceSessions.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx
from huggingface_hub import hf_hub_download, hf_hub_url
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from collections.abc import Callable

    from visionexplorer.config import Settings

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1 << 16


class DownloadCancelled(RuntimeError):
    """Raised inside a download that was stopped by cancel_downloads()."""


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def resolve(self, version: int, alpha: float) -> ModelSpec:
        """Return the registry entry for a MobileNet variant."""
        ...

    def ensure_downloaded(self, model_name: str, on_progress: Callable[[float], None] | None = None) -> Path:
        """Ensure a model is downloaded and return its file path."""
        ...

    def load_labels(self, model_name: str) -> list[str]:
        """Return class labels indexed by model output position."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached or newly created InferenceSession."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single MobileNet ONNX export."""

    name: str
    version: int
    alpha: float
    input_size: int
    repo_id: str
    filename: str
    labels_filename: str
    license: str


def _mobilenet(version: int, alpha: float, input_size: int) -> ModelSpec:
    name = f"mobilenet_v{version}_{alpha}_{input_size}"
    return ModelSpec(
        name=name,
        version=version,
        alpha=alpha,
        input_size=input_size,
        repo_id=f"Xenova/{name}",
        filename="onnx/model.onnx",
        labels_filename="config.json",
        license="Apache-2.0",
    )


MODEL_REGISTRY: dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        _mobilenet(2, 1.0, 224),
        _mobilenet(2, 1.4, 224),
        _mobilenet(2, 0.75, 160),
        _mobilenet(2, 0.35, 96),
        _mobilenet(1, 1.0, 224),
        _mobilenet(1, 0.75, 192),
    )
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads, loads and caches ONNX inference sessions."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)
        self._http = http_client or httpx.Client(follow_redirects=True, timeout=None)

        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._sessions: dict[str, InferenceSession] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @staticmethod
    def resolve(version: int, alpha: float) -> ModelSpec:
        """Find the registry entry matching a MobileNet version and width multiplier."""
        for spec in MODEL_REGISTRY.values():
            if spec.version == version and spec.alpha == alpha:
                return spec
        raise KeyError(f"Unknown model: mobilenet v{version} alpha={alpha}")

    def ensure_downloaded(self, model_name: str, on_progress: Callable[[float], None] | None = None) -> Path:
        """Download model weights if not already present locally.

        ``on_progress`` receives the downloaded fraction in [0, 1]; it is
        called with 1.0 once the file is in place, including when it was
        already on disk.
        """
        spec = self._get_spec(model_name)
        report = on_progress or (lambda _fraction: None)

        path = self._model_paths.get(model_name) or self._local_path(spec)
        if path.exists():
            self._model_paths[model_name] = path
            report(1.0)
            return path

        url = hf_hub_url(repo_id=spec.repo_id, filename=spec.filename)
        self._stream_download(url, path, report)
        self._model_paths[model_name] = path
        logger.info("Downloaded %s to %s", model_name, path)
        report(1.0)
        return path

    def load_labels(self, model_name: str) -> list[str]:
        """Read the id2label map that ships next to the model weights."""
        spec = self._get_spec(model_name)
        config_path = Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=spec.labels_filename,
                local_dir=str(self._models_dir / spec.name),
            )
        )
        id2label: dict[str, str] = json.loads(config_path.read_text(encoding="utf-8"))["id2label"]
        return [id2label[key] for key in sorted(id2label, key=int)]

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                return cached

        model_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                return existing
            self._sessions[model_name] = session
            logger.info("Loaded session for %s", model_name)
            return session

    def cancel_downloads(self) -> None:
        """Abort any in-flight download at its next chunk; later downloads fail immediately."""
        self._cancelled.set()

    def shutdown(self) -> None:
        """Clear all cached sessions and close the HTTP client."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")
        self._http.close()

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def _local_path(self, spec: ModelSpec) -> Path:
        return self._models_dir / spec.name / spec.filename

    def _stream_download(self, url: str, dest: Path, report: Callable[[float], None]) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_suffix(dest.suffix + ".part")
        try:
            self._raise_if_cancelled()
            with self._http.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length", 0))
                received = 0
                with partial.open("wb") as fh:
                    for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                        self._raise_if_cancelled()
                        fh.write(chunk)
                        received += len(chunk)
                        if total:
                            report(min(received / total, 1.0))
            partial.replace(dest)
        finally:
            partial.unlink(missing_ok=True)

    def _raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise DownloadCancelled("Model download cancelled")

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
