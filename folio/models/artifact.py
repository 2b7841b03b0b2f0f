"""
folio/models/artifact.py
Export formats, immutable export artifacts and the descriptor returned to callers.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ExportFormat(str, Enum):
    HTML = "html"
    PDF = "pdf"
    EPUB = "epub"
    MOBI = "mobi"


class ExportArtifact(BaseModel):
    """One completed export. Never mutated; every export inserts a new record."""

    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    user_id: str
    format: ExportFormat
    object_key: str
    file_url: str
    content_type: str
    status: str = "completed"
    template_id: Optional[int] = None
    watermarked: bool = Field(description="Tier watermark policy at generation time")
    generated_at: datetime


class ExportDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    format: ExportFormat
    url: str
    status: str
    generated_at: datetime

    @classmethod
    def from_artifact(cls, artifact: ExportArtifact) -> "ExportDescriptor":
        return cls(
            id=artifact.id,
            format=artifact.format,
            url=artifact.file_url,
            status=artifact.status,
            generated_at=artifact.generated_at,
        )


class ExportRequest(BaseModel):
    project_id: int
    format: ExportFormat
    template_id: Optional[int] = None
