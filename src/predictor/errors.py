"""Exceptions raised by the prediction services."""


class PredictionError(Exception):
    """Base class for every prediction-service error."""


class InvalidInputError(PredictionError):
    """The request does not carry a usable image URL."""


class ImageFetchError(PredictionError):
    """The image could not be downloaded or decoded."""


class ModelIntegrityError(PredictionError):
    """Model artifacts are inconsistent (e.g. label count ≠ output size)."""
