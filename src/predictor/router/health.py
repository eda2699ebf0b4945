"""Router – health check."""

from fastapi import APIRouter

from src.predictor.services.model_service import is_loaded

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; ``model_loaded`` turns true once the bundle is bound."""
    return {"status": "ok", "model_loaded": is_loaded()}
