"""Tests for the ONNX model manager."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
from conftest import make_settings

from visionexplorer.ml.model_manager import DOWNLOAD_CHUNK_SIZE, MODEL_REGISTRY, DownloadCancelled, OnnxModelManager

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

MODEL_BYTES = b"\x08\x07" * 5000


def _client(payload: bytes = MODEL_BYTES, status_code: int = 200) -> tuple[httpx.Client, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, content=payload)

    return httpx.Client(transport=httpx.MockTransport(handler)), requests


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_known_model_lookup(self) -> None:
        spec = MODEL_REGISTRY["mobilenet_v2_1.0_224"]
        assert spec.version == 2
        assert spec.alpha == 1.0
        assert spec.input_size == 224
        assert spec.repo_id == "Xenova/mobilenet_v2_1.0_224"

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError):
            MODEL_REGISTRY["nonexistent_model"]

    def test_version_alpha_pairs_are_unique(self) -> None:
        pairs = [(spec.version, spec.alpha) for spec in MODEL_REGISTRY.values()]
        assert len(pairs) == len(set(pairs))

    def test_resolve_default_variant(self) -> None:
        assert OnnxModelManager.resolve(2, 1.0).name == "mobilenet_v2_1.0_224"

    def test_resolve_unknown_variant(self) -> None:
        with pytest.raises(KeyError, match="Unknown model"):
            OnnxModelManager.resolve(2, 0.5)


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    def test_ensure_downloaded_streams_with_progress(self, tmp_path: Path) -> None:
        client, requests = _client()
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)
        seen: list[float] = []

        path = mgr.ensure_downloaded("mobilenet_v2_1.0_224", seen.append)

        assert path == tmp_path / "mobilenet_v2_1.0_224" / "onnx" / "model.onnx"
        assert path.read_bytes() == MODEL_BYTES
        assert len(requests) == 1
        assert "Xenova/mobilenet_v2_1.0_224" in str(requests[0].url)
        assert str(requests[0].url).endswith("onnx/model.onnx")
        assert seen[-1] == 1.0
        assert seen == sorted(seen)
        assert not path.with_suffix(".onnx.part").exists()

    def test_ensure_downloaded_skips_existing(self, tmp_path: Path) -> None:
        client, requests = _client()
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)
        model_file = tmp_path / "mobilenet_v2_1.0_224" / "onnx" / "model.onnx"
        model_file.parent.mkdir(parents=True)
        model_file.write_bytes(b"cached")
        seen: list[float] = []

        path = mgr.ensure_downloaded("mobilenet_v2_1.0_224", seen.append)

        assert requests == []
        assert path == model_file
        assert seen == [1.0]

    def test_failed_download_leaves_no_file(self, tmp_path: Path) -> None:
        client, _ = _client(payload=b"nope", status_code=404)
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)

        with pytest.raises(httpx.HTTPStatusError):
            mgr.ensure_downloaded("mobilenet_v2_1.0_224")

        model_dir = tmp_path / "mobilenet_v2_1.0_224" / "onnx"
        assert not (model_dir / "model.onnx").exists()
        assert not (model_dir / "model.onnx.part").exists()

    def test_cancelled_manager_does_not_download(self, tmp_path: Path) -> None:
        client, requests = _client()
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)
        mgr.cancel_downloads()

        with pytest.raises(DownloadCancelled):
            mgr.ensure_downloaded("mobilenet_v2_1.0_224")

        assert requests == []
        model_dir = tmp_path / "mobilenet_v2_1.0_224" / "onnx"
        assert not (model_dir / "model.onnx").exists()
        assert not (model_dir / "model.onnx.part").exists()

    def test_cancel_stops_download_between_chunks(self, tmp_path: Path) -> None:
        client, _ = _client(payload=b"\x00" * (DOWNLOAD_CHUNK_SIZE * 4))
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)
        seen: list[float] = []

        def on_progress(fraction: float) -> None:
            seen.append(fraction)
            mgr.cancel_downloads()

        with pytest.raises(DownloadCancelled):
            mgr.ensure_downloaded("mobilenet_v2_1.0_224", on_progress)

        assert seen == [0.25]
        model_dir = tmp_path / "mobilenet_v2_1.0_224" / "onnx"
        assert not (model_dir / "model.onnx").exists()
        assert not (model_dir / "model.onnx.part").exists()

    @patch("visionexplorer.ml.model_manager.hf_hub_download")
    def test_load_labels_orders_by_index(self, mock_download: MagicMock, tmp_path: Path) -> None:
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"id2label": {"2": "goldfish", "0": "background", "10": "cock", "1": "tench"}}))
        mock_download.return_value = str(config)
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)))

        labels = mgr.load_labels("mobilenet_v2_1.0_224")

        assert labels == ["background", "tench", "goldfish", "cock"]
        mock_download.assert_called_once_with(
            repo_id="Xenova/mobilenet_v2_1.0_224",
            filename="config.json",
            local_dir=str(tmp_path / "mobilenet_v2_1.0_224"),
        )

    @patch("visionexplorer.ml.model_manager.InferenceSession")
    def test_get_session_creates_and_caches(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        client, requests = _client()
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)

        session1 = mgr.get_session("mobilenet_v2_1.0_224")
        session2 = mgr.get_session("mobilenet_v2_1.0_224")

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()
        assert len(requests) == 1

    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        mgr = OnnxModelManager(make_settings(device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"

    @patch("visionexplorer.ml.model_manager.InferenceSession")
    def test_shutdown_clears_sessions(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        client, _ = _client()
        mgr = OnnxModelManager(make_settings(models_dir=str(tmp_path)), http_client=client)
        mgr.get_session("mobilenet_v2_1.0_224")

        mgr.shutdown()
        mgr.get_session("mobilenet_v2_1.0_224")

        assert mock_session_cls.call_count == 2

    def test_unknown_model_raises_keyerror(self) -> None:
        mgr = OnnxModelManager(make_settings())
        with pytest.raises(KeyError, match="Unknown model"):
            mgr.ensure_downloaded("totally_fake_model")
