"""Image classification service – FastAPI application entry-point."""

from contextlib import asynccontextmanager
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI

from src.predictor.config import get_settings
from src.predictor.router import health, model, predict
from src.predictor.services.model_service import clear_bundle, get_bundle

settings = get_settings()

# Configure logging from settings
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Lifespan: download + bind the model on startup, release on shutdown
# ──────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    bundle = get_bundle(settings)
    logger.info("✅ Model ready with %d classes.", bundle.num_classes)
    yield
    logger.info("🛑 Shutting down – clearing model bundle …")
    clear_bundle()


# ──────────────────────────────────────────────
# Application factory
# ──────────────────────────────────────────────
app = FastAPI(
    title="Image Classification API",
    description="Top-5 image classification for an image URL.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── register routers ──
app.include_router(health.router)
app.include_router(model.router)
app.include_router(predict.router)
