"""
API request / response models for FastAPI.
"""

from pydantic import BaseModel, Field
from typing import Literal, Optional

from extractor.models import ExtractionResult


class ExtractAccepted(BaseModel):
    tracking_id: str
    status: Literal["processing"] = "processing"
    total: int = 0


class ExtractStatus(BaseModel):
    tracking_id: str
    status: Literal["processing", "completed", "failed"]
    total: int = 0
    progress: dict = Field(default_factory=dict)
    results: list[ExtractionResult] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
