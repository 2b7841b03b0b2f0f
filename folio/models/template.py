"""Export style templates."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class StyleParameters(BaseModel):
    """Typography applied to the assembled document body."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = 1
    font_family: str = "Georgia, serif"
    font_size: str = "16px"
    line_height: str = "1.8"
    max_width: str = "800px"
    text_align: Literal["left", "right", "center", "justify"] = "justify"
    chapter_title_size: str = "2rem"


class Template(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    style: StyleParameters = Field(default_factory=StyleParameters)
    preview_url: Optional[str] = None
    created_at: Optional[datetime] = None


class TemplateUpdate(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    style: Optional[StyleParameters] = None
    preview_url: Optional[str] = None
