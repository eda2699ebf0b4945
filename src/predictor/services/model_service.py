"""Service layer – model loading, binding and top-k inference.

The network is described by two artifacts, a graph definition (Keras
architecture JSON) and its trained parameters (Keras weights file), plus
a plain-text label list.  All three are loaded **once** per execution
environment into a read-only :class:`ModelBundle` that every request
shares.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, NamedTuple

import numpy as np

from src.predictor.config import INPUT_SHAPE, Settings, get_settings
from src.predictor.errors import ModelIntegrityError
from src.predictor.services.storage_service import ArtifactPaths, download_artifacts

logger = logging.getLogger(__name__)

PROBABILITY_TOLERANCE = 1e-3


class ModelBundle(NamedTuple):
    """Bound, ready-to-infer model together with its class labels."""
    model: Any
    labels: tuple[str, ...]
    artifacts: ArtifactPaths

    @property
    def num_classes(self) -> int:
        return len(self.labels)


# ──────────────────────────────────────────────
# Per-environment bundle cache
# ──────────────────────────────────────────────
_bundle: ModelBundle | None = None


# ──────────────────────────────────────────────
# Artifact loading
# ──────────────────────────────────────────────
def load_labels(path: Path) -> tuple[str, ...]:
    """Read one label per line, index = class id."""
    lines = [line.rstrip() for line in Path(path).read_text(encoding="utf-8").splitlines()]
    while lines and not lines[-1]:
        lines.pop()
    if not lines:
        raise ModelIntegrityError(f"Label file {path} is empty.")
    return tuple(lines)


def load_model(symbol_path: Path, params_path: Path) -> Any:
    """Rebuild the network from its graph definition and load its parameters."""
    import tensorflow as tf  # type: ignore[import-untyped]

    logger.info("Loading model graph from %s …", symbol_path)
    model = tf.keras.models.model_from_json(Path(symbol_path).read_text(encoding="utf-8"))
    logger.info("Loading model parameters from %s …", params_path)
    model.load_weights(str(params_path))
    return model


def bind_model(model: Any, labels: tuple[str, ...]) -> Any:
    """
    Run one forward pass on a zero batch of ``INPUT_SHAPE``.

    This builds the inference graph for the fixed input shape and checks
    that the output vector has one entry per label.
    """
    warmup = np.zeros(INPUT_SHAPE, dtype=np.float32)
    output = np.asarray(model.predict(warmup, verbose=0))
    if output.shape[-1] != len(labels):
        raise ModelIntegrityError(
            f"Model produces {output.shape[-1]} outputs but "
            f"{len(labels)} labels were loaded.",
        )
    logger.info("✅ Model bound to input shape %s (%d classes).", INPUT_SHAPE, len(labels))
    return model


def load_bundle(settings: Settings, s3_client: Any | None = None) -> ModelBundle:
    """Download artifacts, parse labels and bind the model."""
    artifacts = download_artifacts(settings, client=s3_client)
    labels = load_labels(artifacts.labels)
    model = bind_model(load_model(artifacts.symbol, artifacts.params), labels)
    return ModelBundle(model=model, labels=labels, artifacts=artifacts)


def get_bundle(settings: Settings | None = None) -> ModelBundle:
    """Return the cached bundle, loading it on first access."""
    global _bundle
    if _bundle is None:
        logger.info("🚀 Loading model bundle …")
        _bundle = load_bundle(settings or get_settings())
    return _bundle


def is_loaded() -> bool:
    return _bundle is not None


def clear_bundle() -> None:
    """Drop the cached bundle and Keras session state (called at shutdown)."""
    global _bundle
    _bundle = None
    tf = sys.modules.get("tensorflow")
    if tf is not None:
        tf.keras.backend.clear_session()
    logger.info("Model bundle cleared from cache.")


# ──────────────────────────────────────────────
# Inference
# ──────────────────────────────────────────────
def softmax(values: np.ndarray) -> np.ndarray:
    exp = np.exp(values - np.max(values))
    return exp / exp.sum()


def forward(bundle: ModelBundle, batch: np.ndarray) -> np.ndarray:
    """Return the probability vector for a single-image batch."""
    output = np.asarray(bundle.model.predict(batch, verbose=0), dtype=np.float64)
    probs = output.reshape(-1)
    if probs.shape[0] != bundle.num_classes:
        raise ModelIntegrityError(
            f"Expected {bundle.num_classes} probabilities, got {probs.shape[0]}.",
        )
    if not np.isclose(probs.sum(), 1.0, atol=PROBABILITY_TOLERANCE):
        logger.debug("Output sums to %.6f, applying softmax.", probs.sum())
        probs = softmax(probs)
    return probs


def top_k(probs: np.ndarray, labels: tuple[str, ...], k: int = 5) -> list[tuple[float, str]]:
    """Pair the *k* most probable classes with their labels, highest first."""
    order = np.argsort(-probs, kind="stable")[: min(k, len(labels))]
    return [(float(probs[idx]), labels[idx]) for idx in order]


def predict(bundle: ModelBundle, batch: np.ndarray, k: int = 5) -> list[tuple[float, str]]:
    return top_k(forward(bundle, batch), bundle.labels, k)
