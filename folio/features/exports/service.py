"""
ExportOrchestrator: one export request from entitlement check to stored artifact.

    VALIDATING -> ASSEMBLING -> PERSISTING -> COMPLETED
    VALIDATING -> REJECTED
    ASSEMBLING | PERSISTING -> FAILED

All checks run in VALIDATING, before any work. The export slot reserved there
is released again on FAILED, so a failed export leaves the ledger where it
started and creates no artifact. Persistence errors are surfaced, never retried
here; resubmitting is safe because assembly is pure. The template row is
locked when the artifact is recorded, and one edited since VALIDATING fails the
export with ConflictError.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from folio.core.auth import verify_token
from folio.core.clock import as_utc, utcnow
from folio.core.config import settings
from folio.core.database import export_artifacts, get_db_session
from folio.core.errors import AppError, ConflictError, ExportFailedError, ObjectExistsError, PersistenceError
from folio.core.logging import log_event
from folio.core.metrics import exports_total
from folio.features.assembly.packaging import PackagedDocument, package_document
from folio.features.assembly.service import DocumentAssembler
from folio.features.entitlements.service import EntitlementLedger
from folio.features.projects.service import ProjectService
from folio.features.templates.service import TemplateService
from folio.models.artifact import ExportArtifact, ExportDescriptor, ExportFormat, ExportRequest
from folio.models.template import Template

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "exports"
_MAX_KEY_ATTEMPTS = 1000


class ExportState(str, Enum):
    VALIDATING = "validating"
    ASSEMBLING = "assembling"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


TRANSITIONS: Dict[ExportState, FrozenSet[ExportState]] = {
    ExportState.VALIDATING: frozenset({ExportState.ASSEMBLING, ExportState.REJECTED}),
    ExportState.ASSEMBLING: frozenset({ExportState.PERSISTING, ExportState.FAILED}),
    ExportState.PERSISTING: frozenset({ExportState.COMPLETED, ExportState.FAILED}),
    ExportState.COMPLETED: frozenset(),
    ExportState.REJECTED: frozenset(),
    ExportState.FAILED: frozenset(),
}


class IllegalTransitionError(ExportFailedError):
    code = "illegal_export_transition"


class ExportRun:
    """State of a single export request."""

    def __init__(self, user_id: str, request: ExportRequest):
        self.user_id = user_id
        self.request = request
        self.state = ExportState.VALIDATING
        self.history: List[ExportState] = [ExportState.VALIDATING]

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def advance(self, new_state: ExportState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise IllegalTransitionError(f"Illegal export transition {self.state.value} -> {new_state.value}")
        logger.debug(f"[export] project_id={self.request.project_id} {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


def row_to_artifact(row) -> ExportArtifact:
    return ExportArtifact(
        id=row.id,
        project_id=row.project_id,
        user_id=row.user_id,
        format=ExportFormat(row.format),
        object_key=row.object_key,
        file_url=row.file_url,
        content_type=row.content_type,
        status=row.status,
        template_id=row.template_id,
        watermarked=row.watermarked,
        generated_at=as_utc(row.generated_at),
    )


class ExportOrchestrator:
    def __init__(
        self,
        ledger: EntitlementLedger,
        store,
        projects: ProjectService,
        templates: TemplateService,
        assembler: Optional[DocumentAssembler] = None,
        session_factory=None,
        clock: Callable[[], datetime] = utcnow,
        bucket: Optional[str] = None,
        verify: Callable[[str], str] = verify_token,
    ):
        self.ledger = ledger
        self.store = store
        self.projects = projects
        self.templates = templates
        self.assembler = assembler or DocumentAssembler()
        self._session_factory = session_factory
        self._clock = clock
        self.bucket = bucket or settings.EXPORT_BUCKET
        self._verify = verify

    def submit(self, token: str, request: ExportRequest, run: Optional[ExportRun] = None) -> ExportDescriptor:
        """Verify the bearer token, then export."""
        return self.export(self._verify(token), request, run=run)

    def export(self, user_id: str, request: ExportRequest, run: Optional[ExportRun] = None) -> ExportDescriptor:
        run = run or ExportRun(user_id, request)
        fmt = ExportFormat(request.format)

        # VALIDATING: every check, then the export slot
        try:
            with get_db_session(self._session_factory) as session:
                project = self.projects.load_project(session, user_id, request.project_id)
            self.ledger.check_export_format_entitlement(user_id, fmt)
            template = self.templates.get_template(request.template_id) if request.template_id else None
            watermark = self.ledger.get_tier_limits(user_id).has_watermark
            self.ledger.reserve_export_slot(user_id)
        except AppError as e:
            run.advance(ExportState.REJECTED)
            exports_total.inc({"format": fmt.value, "status": ExportState.REJECTED.value})
            log_event(
                "info", "export.rejected",
                user_id=user_id, project_id=request.project_id, error_code=e.code,
                extra={"format": fmt.value},
            )
            raise

        try:
            run.advance(ExportState.ASSEMBLING)
            now = self._clock()
            packaged = package_document(
                fmt, self.assembler, project, project.chapters, template, watermark, as_utc(now).date()
            )

            run.advance(ExportState.PERSISTING)
            with get_db_session(self._session_factory) as session:
                if template is not None:
                    self._check_template_unchanged(session, template)
                key, url = self._store(project.id, packaged, now)
                artifact_id = session.execute(
                    export_artifacts.insert()
                    .values(
                        project_id=project.id,
                        user_id=user_id,
                        format=fmt.value,
                        object_key=key,
                        file_url=url,
                        content_type=packaged.content_type,
                        status=ExportState.COMPLETED.value,
                        template_id=template.id if template else None,
                        watermarked=watermark,
                        generated_at=now,
                    )
                    .returning(export_artifacts.c.id)
                ).scalar_one()
            run.advance(ExportState.COMPLETED)
        except Exception as e:
            failed_in = run.state
            if not run.terminal:
                run.advance(ExportState.FAILED)
            self.ledger.release_export_slot(user_id)
            exports_total.inc({"format": fmt.value, "status": ExportState.FAILED.value})
            logger.error(
                f"[export] failed project_id={project.id} format={fmt.value} state={failed_in.value}: "
                f"{type(e).__name__}: {e}"
            )
            if isinstance(e, AppError):
                raise
            if failed_in == ExportState.PERSISTING:
                raise PersistenceError("Failed to store export artifact") from e
            raise ExportFailedError("Export failed") from e

        exports_total.inc({"format": fmt.value, "status": ExportState.COMPLETED.value})
        log_event(
            "info", "export.completed",
            user_id=user_id, project_id=project.id,
            extra={"format": fmt.value, "artifact_id": artifact_id, "watermarked": watermark, "bytes": len(packaged.data)},
        )
        return ExportDescriptor(
            id=artifact_id,
            format=fmt,
            url=url,
            status=ExportState.COMPLETED.value,
            generated_at=as_utc(now),
        )

    def _check_template_unchanged(self, session: Session, template: Template) -> None:
        """Lock the template row and make sure it still matches what was rendered."""
        current = self.templates.get_template(template.id, session=session, for_update=True)
        if current.style != template.style:
            raise ConflictError("Template changed while the export was assembled; resubmit the export")

    def _store(self, project_id: int, packaged: PackagedDocument, now: datetime) -> Tuple[str, str]:
        """
        Write the artifact under `exports/{projectId}-{timestampMs}.{ext}`.

        The store is write-once, so a key taken by a concurrent export moves
        this one to the next millisecond. Returns (key, url).
        """
        millis = int(as_utc(now).timestamp() * 1000)
        for offset in range(_MAX_KEY_ATTEMPTS):
            key = f"{EXPORT_PREFIX}/{project_id}-{millis + offset}.{packaged.extension}"
            try:
                return key, self.store.put(self.bucket, key, packaged.data, packaged.content_type)
            except ObjectExistsError:
                logger.debug(f"[export] key taken bucket={self.bucket} key={key}")
        raise PersistenceError("Could not allocate an export object key")

    def list_exports(self, user_id: str, project_id: int) -> List[ExportArtifact]:
        with get_db_session(self._session_factory) as session:
            self.projects.load_project(session, user_id, project_id)
            rows = session.execute(
                select(export_artifacts)
                .where(export_artifacts.c.project_id == project_id, export_artifacts.c.user_id == user_id)
                .order_by(export_artifacts.c.generated_at.desc(), export_artifacts.c.id.desc())
            ).all()
            return [row_to_artifact(r) for r in rows]
