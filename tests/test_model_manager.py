"""Tests for the ONNX model manager."""

from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from healthysnacks.config import Settings
from healthysnacks.ml.model_manager import (
    HEALTH_LABELS,
    MODEL_REGISTRY,
    SNACK_LABELS,
    OnnxModelManager,
    get_model_spec,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(models_dir: Path, **overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": str(models_dir),
        "model_ttl": 300,
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "max_concurrent": 2,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_known_model_lookup(self) -> None:
        spec = get_model_spec("health_classifier")
        assert spec.name == "health_classifier"
        assert spec.task == "health_classification"
        assert spec.labels == HEALTH_LABELS

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError, match="Unknown model"):
            get_model_spec("nonexistent_model")

    def test_snack_models_share_labels(self) -> None:
        snack_specs = [spec for spec in MODEL_REGISTRY.values() if spec.task == "snack_classification"]
        assert len(snack_specs) == 2
        assert all(spec.labels == SNACK_LABELS for spec in snack_specs)
        assert len(SNACK_LABELS) == 20

    def test_every_model_takes_default_input_size(self) -> None:
        assert {spec.input_size for spec in MODEL_REGISTRY.values()} == {299}

    def test_default_settings_reference_registered_models(self, tmp_path: Path) -> None:
        settings = _make_settings(tmp_path)
        assert settings.snack_model in MODEL_REGISTRY
        assert settings.health_model in MODEL_REGISTRY


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_calls_hf_hub_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "snacks_classifier.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path))

        path = mgr.ensure_downloaded("snacks_classifier")

        mock_download.assert_called_once_with(
            repo_id="healthysnacks/snack-models",
            filename="snacks_classifier.onnx",
            subfolder=None,
            local_dir=str(tmp_path),
        )
        assert path == tmp_path / "snacks_classifier.onnx"

    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_models_repo_setting_overrides_registry(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "health_classifier.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path, models_repo="acme/exported-snack-models"))

        mgr.ensure_downloaded("health_classifier")

        mock_download.assert_called_once_with(
            repo_id="acme/exported-snack-models",
            filename="health_classifier.onnx",
            subfolder=None,
            local_dir=str(tmp_path),
        )

    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_passes_subfolder(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "keras" / "snacks_classifier_nhwc.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path))

        mgr.ensure_downloaded("snacks_classifier_nhwc")

        assert mock_download.call_args.kwargs["subfolder"] == "keras"

    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_skips_existing(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "health_classifier.onnx"
        model_file.touch()

        mgr = OnnxModelManager(_make_settings(tmp_path))
        # Simulate a previous download by setting the cached path.
        mgr._model_paths["health_classifier"] = model_file

        path = mgr.ensure_downloaded("health_classifier")

        mock_download.assert_not_called()
        assert path == model_file

    def test_models_dir_is_created(self, tmp_path: Path) -> None:
        models_dir = tmp_path / "nested" / "models"
        OnnxModelManager(_make_settings(models_dir))
        assert models_dir.is_dir()

    @patch("healthysnacks.ml.model_manager.InferenceSession")
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_get_session_creates_and_caches(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "snacks_classifier.onnx")
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session

        mgr = OnnxModelManager(_make_settings(tmp_path))

        session1 = mgr.get_session("snacks_classifier")
        session2 = mgr.get_session("snacks_classifier")

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()

    @patch("healthysnacks.ml.model_manager.InferenceSession")
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_get_loaded_models(self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        mock_download.side_effect = lambda **kwargs: str(tmp_path / kwargs["filename"])
        mgr = OnnxModelManager(_make_settings(tmp_path))

        assert mgr.get_loaded_models() == []
        mgr.get_session("snacks_classifier")
        mgr.get_session("health_classifier")
        assert mgr.get_loaded_models() == ["snacks_classifier", "health_classifier"]

    @patch("healthysnacks.ml.model_manager.InferenceSession")
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_unload_idle_models_removes_expired(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "snacks_classifier.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path, model_ttl=1))
        mgr.get_session("snacks_classifier")

        # Fake the last_used time to be in the past.
        mgr._sessions["snacks_classifier"].last_used = time.monotonic() - 10

        mgr.unload_idle_models()
        assert mgr.get_loaded_models() == []

    @patch("healthysnacks.ml.model_manager.InferenceSession")
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_unload_idle_keeps_recent(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "snacks_classifier.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path, model_ttl=300))
        mgr.get_session("snacks_classifier")

        mgr.unload_idle_models()
        assert mgr.get_loaded_models() == ["snacks_classifier"]

    @patch("healthysnacks.ml.model_manager.InferenceSession")
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_unload_idle_skipped_when_ttl_zero(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "snacks_classifier.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path, model_ttl=0))
        mgr.get_session("snacks_classifier")
        mgr._sessions["snacks_classifier"].last_used = time.monotonic() - 10_000

        mgr.unload_idle_models()
        assert mgr.get_loaded_models() == ["snacks_classifier"]

    def test_provider_building_cpu(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path, device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"

    @patch("healthysnacks.ml.model_manager.InferenceSession")
    @patch("healthysnacks.ml.model_manager.hf_hub_download")
    def test_shutdown_clears_sessions(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "snacks_classifier.onnx")
        mgr = OnnxModelManager(_make_settings(tmp_path))
        mgr.get_session("snacks_classifier")
        assert len(mgr.get_loaded_models()) == 1

        mgr.shutdown()
        assert mgr.get_loaded_models() == []

    def test_unknown_model_raises_keyerror(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(tmp_path))
        with pytest.raises(KeyError, match="Unknown model"):
            mgr.ensure_downloaded("totally_fake_model")
