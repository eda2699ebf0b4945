"""Tests for label parsing, model binding and top-k ranking."""

import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from conftest import LABELS, PROBABILITIES, FakeModel
from src.predictor.config import INPUT_SHAPE
from src.predictor.errors import ModelIntegrityError
from src.predictor.services import model_service
from src.predictor.services.model_service import (
    bind_model,
    forward,
    load_labels,
    top_k,
)
from src.predictor.services.storage_service import ArtifactPaths


# ──────────────────────────────────────────────
# Labels
# ──────────────────────────────────────────────
def test_load_labels_strips_trailing_whitespace(tmp_path) -> None:
    path = tmp_path / "synset.txt"
    path.write_text("n01440764 tench  \nn01443537 goldfish\t\n\n\n")
    assert load_labels(path) == ("n01440764 tench", "n01443537 goldfish")


def test_load_labels_keeps_inner_blank_lines(tmp_path) -> None:
    path = tmp_path / "synset.txt"
    path.write_text("a\n\nc\n")
    assert load_labels(path) == ("a", "", "c")


def test_load_labels_empty_file(tmp_path) -> None:
    path = tmp_path / "synset.txt"
    path.write_text("\n")
    with pytest.raises(ModelIntegrityError):
        load_labels(path)


# ──────────────────────────────────────────────
# Binding
# ──────────────────────────────────────────────
def test_bind_model_runs_warmup_on_input_shape() -> None:
    model = FakeModel(PROBABILITIES)
    assert bind_model(model, LABELS) is model
    assert model.batches[0].shape == INPUT_SHAPE


def test_bind_model_label_mismatch() -> None:
    with pytest.raises(ModelIntegrityError):
        bind_model(FakeModel(PROBABILITIES), LABELS[:3])


# ──────────────────────────────────────────────
# Inference
# ──────────────────────────────────────────────
def test_forward_probabilities_sum_to_one(bundle) -> None:
    probs = forward(bundle, np.zeros(INPUT_SHAPE, dtype=np.float32))
    assert probs.shape == (len(LABELS),)
    assert probs.sum() == pytest.approx(1.0, abs=1e-3)


def test_forward_normalises_raw_scores(bundle) -> None:
    logits = bundle._replace(model=FakeModel([2.0, 1.0, 0.0, -1.0, 0.5, 0.1, 3.0]))
    probs = forward(logits, np.zeros(INPUT_SHAPE, dtype=np.float32))
    assert probs.sum() == pytest.approx(1.0)
    assert int(np.argmax(probs)) == 6


def test_top_k_is_descending_and_stable() -> None:
    ranked = top_k(np.asarray(PROBABILITIES), LABELS, k=5)
    assert [label for _, label in ranked] == [
        "goldfish",
        "tiger shark",
        "hammerhead",
        "electric ray",
        "great white shark",
    ]
    probs = [p for p, _ in ranked]
    assert probs == sorted(probs, reverse=True)


def test_top_k_indices_resolve_to_labels() -> None:
    rng = np.random.default_rng(7)
    labels = tuple(f"class-{i}" for i in range(1000))
    probs = rng.random(1000)
    probs /= probs.sum()
    ranked = top_k(probs, labels, k=5)
    assert len(ranked) == 5
    assert all(label in labels for _, label in ranked)
    assert ranked[0][1] == labels[int(np.argmax(probs))]


# ──────────────────────────────────────────────
# Bundle cache
# ──────────────────────────────────────────────
def test_get_bundle_loads_once(settings, monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(model_service, "_bundle", None)
    labels_path = tmp_path / "synset.txt"
    labels_path.write_text("\n".join(LABELS) + "\n")
    artifacts = ArtifactPaths(
        params=tmp_path / "resnet.weights.h5",
        symbol=tmp_path / "resnet.json",
        labels=labels_path,
    )

    with patch.object(model_service, "download_artifacts", return_value=artifacts) as download, \
         patch.object(model_service, "load_model", return_value=FakeModel(PROBABILITIES)) as load:
        first = model_service.get_bundle(settings)
        second = model_service.get_bundle(settings)

    assert first is second
    assert first.labels == LABELS
    download.assert_called_once()
    load.assert_called_once_with(artifacts.symbol, artifacts.params)

    model_service.clear_bundle()
    assert model_service._bundle is None


def test_load_bundle_propagates_download_failure(settings) -> None:
    with patch.object(model_service, "download_artifacts", side_effect=RuntimeError("s3 down")):
        with pytest.raises(RuntimeError):
            model_service.load_bundle(settings, s3_client=MagicMock())


def test_load_model_from_keras_artifacts(tmp_path) -> None:
    """Graph JSON + weights file written by Keras load back into a working model."""
    tf = pytest.importorskip("tensorflow")

    source = tf.keras.Sequential([
        tf.keras.Input(shape=INPUT_SHAPE[1:]),
        tf.keras.layers.GlobalAveragePooling2D(data_format="channels_first"),
        tf.keras.layers.Dense(len(LABELS), activation="softmax"),
    ])
    symbol_path = tmp_path / "resnet.json"
    params_path = tmp_path / "resnet.weights.h5"
    symbol_path.write_text(source.to_json())
    source.save_weights(str(params_path))

    model = bind_model(model_service.load_model(symbol_path, params_path), LABELS)
    batch = np.random.default_rng(0).random(INPUT_SHAPE).astype(np.float32)
    np.testing.assert_allclose(
        model.predict(batch, verbose=0),
        source.predict(batch, verbose=0),
        rtol=1e-5,
    )


def test_clear_bundle_resets_keras_session(bundle, monkeypatch) -> None:
    fake_tf = MagicMock()
    monkeypatch.setitem(sys.modules, "tensorflow", fake_tf)
    monkeypatch.setattr(model_service, "_bundle", bundle)

    model_service.clear_bundle()

    assert model_service._bundle is None
    fake_tf.keras.backend.clear_session.assert_called_once_with()


def test_clear_bundle_without_tensorflow(bundle, monkeypatch) -> None:
    monkeypatch.delitem(sys.modules, "tensorflow", raising=False)
    monkeypatch.setattr(model_service, "_bundle", bundle)
    model_service.clear_bundle()
    assert not model_service.is_loaded()
