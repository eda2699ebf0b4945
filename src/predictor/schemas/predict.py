from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PredictionEntry(BaseModel):
    """Single ranked class, probability rendered as a decimal string."""
    model_config = ConfigDict(populate_by_name=True)

    probability: str
    class_name: str = Field(alias="class")


class PredictionResponse(BaseModel):
    """Body of a successful GET /predict."""
    predictions: list[PredictionEntry]


class ErrorResponse(BaseModel):
    """Body of a failed GET /predict."""
    error: str
    detail: str


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    INVALID_INPUT = "invalid_input"
    FETCH_FAILURE = "fetch_failure"
    UNSUPPORTED_METHOD = "unsupported_method"
    INTERNAL_FAULT = "internal_fault"


class PredictionOutcome(BaseModel):
    """Result of handling one request, before it is wrapped for HTTP."""
    kind: OutcomeKind
    response: PredictionResponse | None = None
    detail: str = ""

    @property
    def result(self) -> str | None:
        """Serialised predictions, or ``None`` when there is nothing to return."""
        if self.response is None:
            return None
        return self.response.model_dump_json(by_alias=True)


class HttpResponse(BaseModel):
    """Transport-neutral HTTP envelope."""
    status_code: int
    headers: dict[str, str]
    body: str

    def to_lambda(self) -> dict:
        """Render as an API Gateway proxy integration response."""
        return {
            "statusCode": self.status_code,
            "headers": self.headers,
            "body": self.body,
        }
