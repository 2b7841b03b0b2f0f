"""
folio/models/project.py
Project, chapter and their versioned JSON sub-documents (metadata, outline).
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ChapterStatus(str, Enum):
    DRAFT = "draft"
    AI_GENERATED = "ai-generated"
    EDITED = "edited"


class SeriesInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    number: Optional[int] = Field(default=None, ge=1)


class ProjectMetadata(BaseModel):
    """
    Publishing metadata (identifier, author, categories, ...).

    Stored as JSON on the project row and parsed once when loaded.
    `schema_version` lets older rows be upgraded on read.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = 1
    isbn: Optional[str] = None
    author_name: Optional[str] = None
    publisher_name: Optional[str] = None
    publication_date: Optional[date] = None
    categories: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    series: Optional[SeriesInfo] = None
    price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    age_range_min: Optional[int] = Field(default=None, ge=0)
    age_range_max: Optional[int] = Field(default=None, ge=0)
    enable_drm: bool = False

    @field_validator("keywords", "categories")
    @classmethod
    def _strip_blanks(cls, values: List[str]) -> List[str]:
        return [v.strip() for v in values if v and v.strip()]


def _either(name: str, camel: str) -> AliasChoices:
    # Stored rows use field names; generated outlines arrive camelCased.
    return AliasChoices(name, camel)


class OutlineEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: int = Field(ge=1, description="Chapter position this entry plans")
    title: str
    synopsis: str = ""
    key_points: List[str] = Field(default_factory=list, validation_alias=_either("key_points", "keyPoints"))
    emotional_beat: Optional[str] = Field(default=None, validation_alias=_either("emotional_beat", "emotionalBeat"))
    estimated_word_count: Optional[int] = Field(
        default=None, ge=0, validation_alias=_either("estimated_word_count", "estimatedWordCount")
    )
    notes: Optional[str] = None


class ProjectOutline(BaseModel):
    """Chapter-by-chapter plan used to steer generation."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = 1
    structure: Optional[str] = Field(default=None, validation_alias=_either("structure", "bookStructure"))
    premise: Optional[str] = Field(default=None, validation_alias=_either("premise", "overallArc"))
    target_audience: Optional[str] = Field(default=None, validation_alias=_either("target_audience", "targetAudience"))
    key_themes: List[str] = Field(default_factory=list, validation_alias=_either("key_themes", "keyThemes"))
    pacing_notes: Optional[str] = Field(default=None, validation_alias=_either("pacing_notes", "pacingNotes"))
    chapters: List[OutlineEntry] = Field(default_factory=list)

    def entry_for(self, order: int) -> Optional[OutlineEntry]:
        for entry in self.chapters:
            if entry.order == order:
                return entry
        return None


class Chapter(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    title: str
    content: str = ""
    order: int = Field(ge=1)
    status: ChapterStatus = ChapterStatus.DRAFT
    word_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    title: str
    genre: str
    language: str = "English"
    description: Optional[str] = None
    cover_image: Optional[str] = None
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
    outline: Optional[ProjectOutline] = None
    chapters: List[Chapter] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    genre: str = Field(min_length=1, max_length=100)
    language: str = "English"
    description: Optional[str] = None
    cover_image: Optional[str] = None


class ProjectUpdate(BaseModel):
    """Partial update; only fields that are set are written."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    genre: Optional[str] = None
    language: Optional[str] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    metadata: Optional[ProjectMetadata] = None
    outline: Optional[ProjectOutline] = None


class ChapterCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    content: str = ""


class ChapterUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    content: Optional[str] = None
    status: Optional[ChapterStatus] = None
