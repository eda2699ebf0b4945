"""Router – image prediction."""

from fastapi import APIRouter, Request, Response

from src.predictor.config import get_settings
from src.predictor.services.model_service import get_bundle
from src.predictor.services.prediction_service import handle, wrap

router = APIRouter(tags=["Prediction"])


@router.api_route("/predict", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
def predict_image(request: Request) -> Response:
    """
    Classify the image at ``?url=`` and return the top-5 labels.

    Non-GET methods are routed here too so that they are answered by the
    same outcome mapping as the serverless entry point.
    """
    settings = get_settings()
    outcome = handle(
        request.method,
        dict(request.query_params),
        get_bundle(settings),
        settings,
    )
    envelope = wrap(outcome, legacy=settings.legacy_empty_responses)
    return Response(
        content=envelope.body,
        status_code=envelope.status_code,
        media_type=envelope.headers["Content-Type"],
    )
