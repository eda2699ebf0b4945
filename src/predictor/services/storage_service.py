"""Service layer – model artifact download from the object store."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, NamedTuple

import boto3
from botocore.exceptions import ClientError

from src.predictor.config import Settings

logger = logging.getLogger(__name__)


class ArtifactPaths(NamedTuple):
    """Local paths of the three downloaded model artifacts."""
    params: Path
    symbol: Path
    labels: Path


def create_s3_client(settings: Settings) -> Any:
    """Return a boto3 S3 client honouring the optional endpoint override."""
    return boto3.client("s3", endpoint_url=settings.aws_endpoint_url)


def download_artifact(client: Any, bucket: str, key: str, destination: Path) -> Path:
    """
    Download ``s3://bucket/key`` to *destination* unless it is already there.

    Files in the local cache are immutable for the lifetime of the
    execution environment, so an existing file is never fetched twice.
    """
    if destination.exists():
        logger.info("Artifact %s already cached at %s", key, destination)
        return destination

    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = destination.with_name(destination.name + ".part")
    try:
        client.download_file(bucket, key, str(tmp_path))
    except ClientError as exc:
        logger.error("Failed to download s3://%s/%s: %s", bucket, key, exc)
        tmp_path.unlink(missing_ok=True)
        raise
    tmp_path.replace(destination)
    logger.info("⬇️  Downloaded s3://%s/%s to %s", bucket, key, destination)
    return destination


def download_artifacts(settings: Settings, client: Any | None = None) -> ArtifactPaths:
    """Fetch parameters, graph definition and labels into ``settings.artifact_dir``."""
    if client is None:
        client = create_s3_client(settings)

    directory = Path(settings.artifact_dir)
    paths = [
        download_artifact(
            client,
            settings.model_bucket,
            settings.object_key(name),
            directory / name,
        )
        for name in (settings.params_file, settings.symbol_file, settings.labels_file)
    ]
    return ArtifactPaths(*paths)
