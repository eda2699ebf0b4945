"""Shared fixtures: environment, fake model bundle, in-memory images."""

import io
import os

# Required settings must exist before the application modules are imported.
os.environ.setdefault("MODEL_BUCKET", "test-models")
os.environ.setdefault("MODEL_PREFIX", "resnet")
os.environ.setdefault("PARAMS_FILE", "resnet.weights.h5")
os.environ.setdefault("SYMBOL_FILE", "resnet.json")
os.environ.setdefault("LABELS_FILE", "synset.txt")

import numpy as np
import pytest
from PIL import Image

from src.predictor.config import Settings, get_settings
from src.predictor.services import model_service
from src.predictor.services.model_service import ModelBundle
from src.predictor.services.storage_service import ArtifactPaths

LABELS = (
    "tench",
    "goldfish",
    "great white shark",
    "tiger shark",
    "hammerhead",
    "electric ray",
    "stingray",
)
PROBABILITIES = [0.05, 0.30, 0.10, 0.20, 0.15, 0.15, 0.05]


class FakeModel:
    """Stands in for a bound Keras model, returning a fixed output row."""

    def __init__(self, probabilities):
        self.output = np.asarray(probabilities, dtype=np.float32).reshape(1, -1)
        self.batches = []

    def predict(self, batch, verbose=0):
        self.batches.append(batch)
        return self.output


def png_bytes(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel(PROBABILITIES)


@pytest.fixture
def bundle(fake_model, tmp_path) -> ModelBundle:
    artifacts = ArtifactPaths(
        params=tmp_path / "resnet.weights.h5",
        symbol=tmp_path / "resnet.json",
        labels=tmp_path / "synset.txt",
    )
    return ModelBundle(model=fake_model, labels=LABELS, artifacts=artifacts)


@pytest.fixture
def installed_bundle(bundle, monkeypatch) -> ModelBundle:
    """Make ``get_bundle()`` return the fake bundle without touching S3."""
    monkeypatch.setattr(model_service, "_bundle", bundle)
    return bundle
