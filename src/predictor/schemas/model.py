from pydantic import BaseModel


class ModelInfo(BaseModel):
    """Response schema for GET /model."""
    params_file: str
    symbol_file: str
    labels_file: str
    num_classes: int
    input_shape: list[int]
