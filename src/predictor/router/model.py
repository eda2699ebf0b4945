"""Router – loaded model metadata."""

from fastapi import APIRouter

from src.predictor.config import INPUT_SHAPE, get_settings
from src.predictor.schemas.model import ModelInfo
from src.predictor.services.model_service import get_bundle

router = APIRouter(tags=["Model"])


@router.get("/model", response_model=ModelInfo)
def get_model_info() -> ModelInfo:
    """Describe the artifacts backing the prediction endpoint."""
    bundle = get_bundle(get_settings())
    return ModelInfo(
        params_file=bundle.artifacts.params.name,
        symbol_file=bundle.artifacts.symbol.name,
        labels_file=bundle.artifacts.labels.name,
        num_classes=bundle.num_classes,
        input_shape=list(INPUT_SHAPE),
    )
