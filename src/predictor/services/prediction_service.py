"""Service layer – request handling: URL validation, image fetch, response wrapping."""

from __future__ import annotations

import io
import logging
from collections.abc import Mapping
from typing import Annotated

import httpx
import numpy as np
from PIL import Image
from pydantic import TypeAdapter, UrlConstraints, ValidationError
from pydantic_core import Url

from src.predictor.config import IMAGE_SIZE, Settings
from src.predictor.errors import ImageFetchError, InvalidInputError
from src.predictor.schemas.predict import (
    ErrorResponse,
    HttpResponse,
    OutcomeKind,
    PredictionEntry,
    PredictionOutcome,
    PredictionResponse,
)
from src.predictor.services import model_service
from src.predictor.services.model_service import ModelBundle

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}

STATUS_CODES: dict[OutcomeKind, int] = {
    OutcomeKind.SUCCESS: 200,
    OutcomeKind.INVALID_INPUT: 400,
    OutcomeKind.UNSUPPORTED_METHOD: 405,
    OutcomeKind.FETCH_FAILURE: 422,
    OutcomeKind.INTERNAL_FAULT: 500,
}

# Presigned object-store URLs can run past 2083 characters.
MAX_URL_LENGTH = 8192

ImageUrl = Annotated[
    Url,
    UrlConstraints(
        max_length=MAX_URL_LENGTH,
        allowed_schemes=["http", "https"],
        host_required=True,
    ),
]

_url_adapter = TypeAdapter(ImageUrl)


# ──────────────────────────────────────────────
# Image helpers
# ──────────────────────────────────────────────
def parse_image_url(query: Mapping[str, str] | None) -> str:
    """Extract and validate the ``url`` query parameter."""
    raw = (query or {}).get("url")
    if raw is None or not raw.strip():
        raise InvalidInputError("Missing 'url' query parameter.")
    try:
        return str(_url_adapter.validate_python(raw.strip()))
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid image URL: {raw[:200]!r}") from exc


def _read_limited(response: httpx.Response, max_bytes: int | None) -> bytes:
    """Read a streamed body, stopping as soon as it exceeds *max_bytes*."""
    if max_bytes is not None:
        declared = response.headers.get("Content-Length", "")
        if declared.isdigit() and int(declared) > max_bytes:
            raise ImageFetchError(f"Image too large ({declared} bytes declared).")

    buffer = bytearray()
    for chunk in response.iter_bytes():
        buffer.extend(chunk)
        if max_bytes is not None and len(buffer) > max_bytes:
            raise ImageFetchError(f"Image larger than {max_bytes} bytes.")
    return bytes(buffer)


def _download(client: httpx.Client, image_url: str, max_bytes: int | None) -> bytes:
    with client.stream("GET", image_url) as response:
        response.raise_for_status()
        return _read_limited(response, max_bytes)


def fetch_image(
    image_url: str,
    timeout: float = 10.0,
    max_bytes: int | None = None,
    client: httpx.Client | None = None,
) -> Image.Image:
    """Download an image from *image_url* and return it as an RGB PIL Image."""
    try:
        if client is None:
            with httpx.Client(timeout=timeout, follow_redirects=True) as own_client:
                content = _download(own_client, image_url, max_bytes)
        else:
            content = _download(client, image_url, max_bytes)
    except httpx.HTTPError as exc:
        raise ImageFetchError(f"Could not fetch image: {exc}") from exc

    if not content:
        raise ImageFetchError("Image response was empty.")

    try:
        image = Image.open(io.BytesIO(content))
        # Pillow decodes to RGB, the channel order the model expects.
        return image.convert("RGB")
    except (OSError, Image.DecompressionBombError) as exc:
        raise ImageFetchError(f"Could not decode image: {exc}") from exc


def preprocess_image(image: Image.Image) -> np.ndarray:
    """Resize to ``IMAGE_SIZE`` and lay out as a (1, 3, H, W) float32 batch."""
    image = image.resize(IMAGE_SIZE)
    arr = np.asarray(image, dtype=np.float32)   # (H, W, 3)
    arr = np.transpose(arr, (2, 0, 1))          # (3, H, W)
    return np.expand_dims(arr, axis=0)


def format_predictions(ranked: list[tuple[float, str]]) -> PredictionResponse:
    return PredictionResponse(
        predictions=[
            PredictionEntry(probability=f"{prob:f}", class_name=label)
            for prob, label in ranked
        ],
    )


# ──────────────────────────────────────────────
# Request handling
# ──────────────────────────────────────────────
def handle(
    method: str,
    query: Mapping[str, str] | None,
    bundle: ModelBundle,
    settings: Settings,
    client: httpx.Client | None = None,
) -> PredictionOutcome:
    """Turn one GET /predict request into a :class:`PredictionOutcome`."""
    if (method or "").upper() != "GET":
        logger.info("Rejected %s request.", method)
        return PredictionOutcome(
            kind=OutcomeKind.UNSUPPORTED_METHOD,
            detail=f"Method {method} not allowed, use GET.",
        )

    try:
        image_url = parse_image_url(query)
    except InvalidInputError as exc:
        logger.info("Invalid input: %s", exc)
        return PredictionOutcome(kind=OutcomeKind.INVALID_INPUT, detail=str(exc))

    try:
        image = fetch_image(
            image_url,
            timeout=settings.fetch_timeout,
            max_bytes=settings.max_image_bytes,
            client=client,
        )
    except ImageFetchError as exc:
        logger.warning("Fetch failure for %s: %s", image_url, exc)
        return PredictionOutcome(kind=OutcomeKind.FETCH_FAILURE, detail=str(exc))

    try:
        ranked = model_service.predict(bundle, preprocess_image(image), settings.top_k)
    except Exception as exc:
        logger.exception("Inference failed for %s", image_url)
        return PredictionOutcome(kind=OutcomeKind.INTERNAL_FAULT, detail=str(exc))

    logger.info("Predicted %s for %s", ranked[0][1] if ranked else None, image_url)
    return PredictionOutcome(kind=OutcomeKind.SUCCESS, response=format_predictions(ranked))


def wrap(outcome: PredictionOutcome, legacy: bool = False) -> HttpResponse:
    """
    Map an outcome onto an HTTP envelope.

    With *legacy* set every non-success outcome becomes ``200`` with an
    empty-object body.
    """
    result = outcome.result
    if result is not None:
        return HttpResponse(status_code=200, headers=dict(JSON_HEADERS), body=result)
    if legacy:
        return HttpResponse(status_code=200, headers=dict(JSON_HEADERS), body="{}")

    body = ErrorResponse(error=outcome.kind.value, detail=outcome.detail)
    return HttpResponse(
        status_code=STATUS_CODES[outcome.kind],
        headers=dict(JSON_HEADERS),
        body=body.model_dump_json(),
    )
