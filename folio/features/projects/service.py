"""
Projects and chapters: ownership-checked CRUD.

- Creating a project reserves a project slot in the same transaction.
- Chapter `order` comes from the project's monotonic counter, so an order is
  never handed out twice, even after deletions.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from folio.core.clock import as_utc, utcnow
from folio.core.config import settings
from folio.core.database import chapters, export_artifacts, get_db_session, projects, readability_scores
from folio.core.errors import LimitExceededError, NotFoundError, ValidationError
from folio.core.metrics import ledger_rejections_total
from folio.features.analysis.jobs import AnalysisDispatcher
from folio.features.analysis.readability import count_words
from folio.features.entitlements.service import EntitlementLedger
from folio.features.entitlements.tiers import is_unlimited
from folio.models.project import (
    Chapter,
    ChapterCreate,
    ChapterStatus,
    ChapterUpdate,
    Project,
    ProjectCreate,
    ProjectMetadata,
    ProjectOutline,
    ProjectUpdate,
)

logger = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}


def parse_metadata(raw: Optional[Dict[str, Any]]) -> ProjectMetadata:
    if not raw:
        return ProjectMetadata()
    try:
        return ProjectMetadata.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"[projects] unreadable metadata, using defaults: {e.error_count()} errors")
        return ProjectMetadata()


def parse_outline(raw: Optional[Dict[str, Any]]) -> Optional[ProjectOutline]:
    if not raw:
        return None
    try:
        return ProjectOutline.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"[projects] unreadable outline, ignoring: {e.error_count()} errors")
        return None


def row_to_chapter(row) -> Chapter:
    return Chapter(
        id=row.id,
        project_id=row.project_id,
        title=row.title,
        content=row.content or "",
        order=row.order,
        status=ChapterStatus(row.status),
        word_count=row.word_count,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def row_to_project(row, chapter_rows=()) -> Project:
    return Project(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        genre=row.genre,
        language=row.language,
        description=row.description,
        cover_image=row.cover_image,
        metadata=parse_metadata(row.metadata_json),
        outline=parse_outline(row.outline_json),
        chapters=[row_to_chapter(c) for c in chapter_rows],
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


class ProjectService:
    def __init__(
        self,
        ledger: Optional[EntitlementLedger] = None,
        store=None,
        analysis: Optional[AnalysisDispatcher] = None,
        session_factory=None,
    ):
        self._session_factory = session_factory
        self.ledger = ledger or EntitlementLedger(session_factory)
        self.store = store
        self.analysis = analysis

    # -- loading -----------------------------------------------------------

    def _owned_project_row(self, session: Session, user_id: str, project_id: int):
        row = session.execute(
            select(projects).where(projects.c.id == project_id, projects.c.user_id == user_id)
        ).first()
        if row is None:
            raise NotFoundError("Project not found")
        return row

    def _owned_chapter_row(self, session: Session, user_id: str, chapter_id: int):
        row = session.execute(
            select(chapters)
            .join(projects, projects.c.id == chapters.c.project_id)
            .where(chapters.c.id == chapter_id, projects.c.user_id == user_id)
        ).first()
        if row is None:
            raise NotFoundError("Chapter not found")
        return row

    def _chapter_rows(self, session: Session, project_id: int):
        return session.execute(
            select(chapters).where(chapters.c.project_id == project_id).order_by(chapters.c.order.asc())
        ).all()

    def load_project(self, session: Session, user_id: str, project_id: int) -> Project:
        """Owned project with its chapters in order. Raises NotFoundError otherwise."""
        row = self._owned_project_row(session, user_id, project_id)
        return row_to_project(row, self._chapter_rows(session, project_id))

    # -- projects ----------------------------------------------------------

    def create_project(self, user_id: str, data: ProjectCreate) -> Project:
        now = utcnow()
        with get_db_session(self._session_factory) as session:
            self.ledger.reserve_project_slot(user_id, session=session)
            project_id = session.execute(
                projects.insert()
                .values(
                    user_id=user_id,
                    title=data.title,
                    genre=data.genre,
                    language=data.language,
                    description=data.description,
                    cover_image=data.cover_image,
                    metadata_json=ProjectMetadata().model_dump(mode="json"),
                    outline_json=None,
                    next_chapter_order=1,
                    created_at=now,
                    updated_at=now,
                )
                .returning(projects.c.id)
            ).scalar_one()
            project = self.load_project(session, user_id, project_id)

        logger.info(f"[projects] created project_id={project.id} user_id={user_id}")
        return project

    def list_projects(self, user_id: str) -> List[Project]:
        with get_db_session(self._session_factory) as session:
            rows = session.execute(
                select(projects).where(projects.c.user_id == user_id).order_by(projects.c.updated_at.desc())
            ).all()
            return [row_to_project(r, self._chapter_rows(session, r.id)) for r in rows]

    def get_project(self, user_id: str, project_id: int) -> Project:
        with get_db_session(self._session_factory) as session:
            return self.load_project(session, user_id, project_id)

    def update_project(self, user_id: str, project_id: int, patch: ProjectUpdate) -> Project:
        values: Dict[str, Any] = {}
        for field in ("title", "genre", "language", "description", "cover_image"):
            if field in patch.model_fields_set:
                values[field] = getattr(patch, field)
        if patch.metadata is not None:
            values["metadata_json"] = patch.metadata.model_dump(mode="json")
        if "outline" in patch.model_fields_set:
            values["outline_json"] = patch.outline.model_dump(mode="json") if patch.outline else None
        for required in ("title", "genre", "language"):
            if required in values and not values[required]:
                raise ValidationError(f"{required} cannot be empty")

        with get_db_session(self._session_factory) as session:
            self._owned_project_row(session, user_id, project_id)
            if values:
                values["updated_at"] = utcnow()
                session.execute(update(projects).where(projects.c.id == project_id).values(**values))
            return self.load_project(session, user_id, project_id)

    def delete_project(self, user_id: str, project_id: int) -> None:
        with get_db_session(self._session_factory) as session:
            self._owned_project_row(session, user_id, project_id)
            chapter_ids = select(chapters.c.id).where(chapters.c.project_id == project_id)
            session.execute(delete(readability_scores).where(readability_scores.c.chapter_id.in_(chapter_ids)))
            session.execute(delete(chapters).where(chapters.c.project_id == project_id))
            session.execute(delete(export_artifacts).where(export_artifacts.c.project_id == project_id))
            session.execute(delete(projects).where(projects.c.id == project_id))
            self.ledger.release_project_slot(user_id, session=session)
        logger.info(f"[projects] deleted project_id={project_id} user_id={user_id}")

    # -- chapters ----------------------------------------------------------

    def list_chapters(self, user_id: str, project_id: int) -> List[Chapter]:
        with get_db_session(self._session_factory) as session:
            self._owned_project_row(session, user_id, project_id)
            return [row_to_chapter(r) for r in self._chapter_rows(session, project_id)]

    def get_chapter(self, user_id: str, chapter_id: int) -> Chapter:
        with get_db_session(self._session_factory) as session:
            return row_to_chapter(self._owned_chapter_row(session, user_id, chapter_id))

    def create_chapter(self, user_id: str, project_id: int, data: ChapterCreate) -> Chapter:
        now = utcnow()
        with get_db_session(self._session_factory) as session:
            self._owned_project_row(session, user_id, project_id)

            # The counter bump locks the project row, so the count below sees every committed create.
            next_order = session.execute(
                update(projects)
                .where(projects.c.id == project_id)
                .values(next_chapter_order=projects.c.next_chapter_order + 1, updated_at=now)
                .returning(projects.c.next_chapter_order)
            ).scalar_one()

            limits = self.ledger.get_tier_limits(user_id, session=session)
            if not is_unlimited(limits.max_chapters_per_project):
                count = session.execute(
                    select(func.count()).select_from(chapters).where(chapters.c.project_id == project_id)
                ).scalar_one()
                if count >= limits.max_chapters_per_project:
                    ledger_rejections_total.inc({"reason": LimitExceededError.code})
                    raise LimitExceededError(
                        f"Chapter limit reached ({limits.max_chapters_per_project} per project). "
                        "Upgrade your subscription to add more chapters."
                    )

            chapter_id = session.execute(
                chapters.insert()
                .values(
                    project_id=project_id,
                    title=data.title,
                    content=data.content,
                    order=next_order - 1,
                    status=ChapterStatus.DRAFT.value,
                    word_count=count_words(data.content),
                    created_at=now,
                    updated_at=now,
                )
                .returning(chapters.c.id)
            ).scalar_one()
            chapter = row_to_chapter(self._owned_chapter_row(session, user_id, chapter_id))

        logger.info(f"[projects] created chapter_id={chapter.id} project_id={project_id} order={chapter.order}")
        self._schedule_analysis(chapter)
        return chapter

    def update_chapter(self, user_id: str, chapter_id: int, patch: ChapterUpdate) -> Chapter:
        values: Dict[str, Any] = {}
        if patch.title is not None:
            values["title"] = patch.title
        if patch.content is not None:
            values["content"] = patch.content
            values["word_count"] = count_words(patch.content)
        if patch.status is not None:
            values["status"] = patch.status.value

        with get_db_session(self._session_factory) as session:
            self._owned_chapter_row(session, user_id, chapter_id)
            if values:
                values["updated_at"] = utcnow()
                session.execute(update(chapters).where(chapters.c.id == chapter_id).values(**values))
            chapter = row_to_chapter(self._owned_chapter_row(session, user_id, chapter_id))

        if "content" in values:
            self._schedule_analysis(chapter)
        return chapter

    def save_chapter_content(self, session: Session, chapter_id: int, content: str, status: ChapterStatus) -> None:
        """Write generated/edited content inside the caller's transaction."""
        session.execute(
            update(chapters)
            .where(chapters.c.id == chapter_id)
            .values(content=content, status=status.value, word_count=count_words(content), updated_at=utcnow())
        )

    def delete_chapter(self, user_id: str, chapter_id: int) -> None:
        with get_db_session(self._session_factory) as session:
            self._owned_chapter_row(session, user_id, chapter_id)
            session.execute(delete(readability_scores).where(readability_scores.c.chapter_id == chapter_id))
            session.execute(delete(chapters).where(chapters.c.id == chapter_id))
        logger.info(f"[projects] deleted chapter_id={chapter_id}")

    def _schedule_analysis(self, chapter: Chapter) -> None:
        if self.analysis is not None:
            self.analysis.enqueue_readability(chapter.id, chapter.content)

    # -- covers ------------------------------------------------------------

    def generate_cover_upload_url(self, user_id: str, project_id: int, file_extension: str) -> Dict[str, Any]:
        """Presigned PUT for a cover image, valid for COVER_UPLOAD_TTL_SECONDS."""
        ext = (file_extension or "").lower().lstrip(".")
        if ext not in _IMAGE_EXTENSIONS:
            raise ValidationError(f"Unsupported cover image type: {file_extension!r}")
        if self.store is None:
            raise ValidationError("Cover uploads are not configured")

        with get_db_session(self._session_factory) as session:
            self._owned_project_row(session, user_id, project_id)

        key = f"{project_id}-{int(utcnow().timestamp() * 1000)}-{uuid.uuid4().hex[:8]}.{ext}"
        ttl = settings.COVER_UPLOAD_TTL_SECONDS
        return {
            "upload_url": self.store.presigned_put_url(settings.COVER_BUCKET, key, ttl),
            "public_url": self.store.public_url(settings.COVER_BUCKET, key),
            "expires_in": ttl,
        }
