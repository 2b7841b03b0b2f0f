"""
AI authoring: outlines, whole-chapter generation and streamed span edits.

Credits are spent immediately before the provider call starts. A failure the
provider confirms (GenerationProviderError) refunds the credit; a client that
walks away mid-stream does not get one back.
"""

import json
import logging
import re
import uuid
from typing import Iterator, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select

from folio.core.database import chapters, get_db_session
from folio.core.errors import GenerationProviderError, NotFoundError, ValidationError
from folio.core.logging import log_event
from folio.features.ai.prompts import STRUCTURES, chapter_prompts, outline_prompts, span_edit_prompts
from folio.features.ai.splice import SpanSnapshot
from folio.features.analysis.jobs import AnalysisDispatcher
from folio.features.entitlements.service import EntitlementLedger
from folio.features.generation.client import GenerationClient, GroqGenerationClient, StreamFragment
from folio.features.projects.service import ProjectService
from folio.models.project import Chapter, ChapterStatus, ProjectOutline, ProjectUpdate

logger = logging.getLogger(__name__)

GENERATION_COST = 1
SPAN_EDIT_MODES = ("rewrite", "expand")
DEFAULT_OUTLINE_CHAPTERS = 12
OUTLINE_CHAPTER_RANGE = (3, 50)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_outline_reply(text: str) -> ProjectOutline:
    """Read the provider's JSON outline, tolerating a surrounding code fence."""
    body = text.strip()
    fenced = _FENCE.match(body)
    if fenced:
        body = fenced.group(1)
    try:
        return ProjectOutline.model_validate(json.loads(body))
    except (ValueError, PydanticValidationError) as e:
        logger.warning(f"[ai] unreadable outline reply: {type(e).__name__}")
        raise GenerationProviderError("Generation provider returned an unreadable outline")


class AuthoringService:
    def __init__(
        self,
        ledger: EntitlementLedger,
        projects: ProjectService,
        generator: Optional[GenerationClient] = None,
        analysis: Optional[AnalysisDispatcher] = None,
        session_factory=None,
    ):
        self.ledger = ledger
        self.projects = projects
        self.generator = generator or GroqGenerationClient()
        self.analysis = analysis
        self._session_factory = session_factory

    def _spend(self, user_id: str, reason: str, target_id: int) -> str:
        reference = f"{reason}:{target_id}:{uuid.uuid4().hex}"
        self.ledger.check_and_consume_credits(user_id, GENERATION_COST, reason=reason, reference_id=reference)
        return reference

    def _refund(self, user_id: str, reference: str, error: GenerationProviderError) -> None:
        self.ledger.refund_credits(user_id, GENERATION_COST, reason="provider_failure", reference_id=reference)
        log_event(
            "warning", "generation.refunded",
            user_id=user_id, error_code=error.code, extra={"reference_id": reference},
        )

    def generate_outline(
        self,
        user_id: str,
        project_id: int,
        structure: Optional[str] = None,
        chapter_count: int = DEFAULT_OUTLINE_CHAPTERS,
    ) -> ProjectOutline:
        """Plan the book chapter by chapter and store the result as the project outline."""
        if structure is not None and structure not in STRUCTURES:
            raise ValidationError(f"Unknown structure: {structure!r}")
        if not OUTLINE_CHAPTER_RANGE[0] <= chapter_count <= OUTLINE_CHAPTER_RANGE[1]:
            raise ValidationError(
                f"Chapter count must be between {OUTLINE_CHAPTER_RANGE[0]} and {OUTLINE_CHAPTER_RANGE[1]}"
            )

        project = self.projects.get_project(user_id, project_id)
        structure = structure or (project.outline.structure if project.outline else None)
        if structure not in STRUCTURES:
            structure = "linear"
        system, user_prompt = outline_prompts(project, structure, chapter_count)

        reference = self._spend(user_id, "outline_generation", project_id)
        try:
            outline = parse_outline_reply(self.generator.complete(user_prompt, system))
        except GenerationProviderError as e:
            self._refund(user_id, reference, e)
            raise
        if outline.structure is None:
            outline = outline.model_copy(update={"structure": structure})

        self.projects.update_project(user_id, project_id, ProjectUpdate(outline=outline))
        logger.info(f"[ai] outlined project_id={project_id} structure={outline.structure} chapters={len(outline.chapters)}")
        return outline

    def generate_chapter(
        self, user_id: str, chapter_id: int, prompt: str, context: Optional[str] = None
    ) -> Chapter:
        """Write the whole chapter from `prompt` and store it as ai-generated."""
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        chapter = self.projects.get_chapter(user_id, chapter_id)
        project = self.projects.get_project(user_id, chapter.project_id)
        system, user_prompt = chapter_prompts(project, chapter, prompt, context)

        reference = self._spend(user_id, "chapter_generation", chapter_id)
        try:
            text = self.generator.complete(user_prompt, system)
        except GenerationProviderError as e:
            self._refund(user_id, reference, e)
            raise

        with get_db_session(self._session_factory) as session:
            self.projects.save_chapter_content(session, chapter_id, text, ChapterStatus.AI_GENERATED)
        updated = self.projects.get_chapter(user_id, chapter_id)

        logger.info(f"[ai] generated chapter_id={chapter_id} words={updated.word_count}")
        if self.analysis is not None:
            self.analysis.enqueue_readability(updated.id, updated.content)
        return updated

    def stream_span_edit(
        self,
        user_id: str,
        chapter_id: int,
        start: int,
        end: int,
        mode: str = "rewrite",
        instruction: Optional[str] = None,
    ) -> Iterator[StreamFragment]:
        """
        Validate, spend the credit, and return the fragment stream for a span edit.

        Checks run before this returns, so callers can report them as ordinary
        errors. The returned iterator yields provider fragments and finishes
        with done=True once the result has been spliced into the chapter.
        """
        if mode not in SPAN_EDIT_MODES:
            raise ValidationError(f"Unknown edit mode: {mode!r}")

        chapter = self.projects.get_chapter(user_id, chapter_id)
        project = self.projects.get_project(user_id, chapter.project_id)
        snapshot = SpanSnapshot.take(chapter.content, start, end)
        system, user_prompt = span_edit_prompts(project, chapter.content, start, end, mode, instruction)

        reference = self._spend(user_id, f"span_{mode}", chapter_id)
        return self._span_stream(user_id, chapter_id, snapshot, system, user_prompt, reference)

    def _span_stream(
        self,
        user_id: str,
        chapter_id: int,
        snapshot: SpanSnapshot,
        system: str,
        user_prompt: str,
        reference: str,
    ) -> Iterator[StreamFragment]:
        pieces = []
        try:
            for fragment in self.generator.stream(user_prompt, system):
                if fragment.done:
                    break
                pieces.append(fragment.content)
                yield fragment
            replacement = "".join(pieces)
            if not replacement.strip():
                raise GenerationProviderError("Generation provider returned no content")
        except GenerationProviderError as e:
            self._refund(user_id, reference, e)
            raise

        self._splice(chapter_id, snapshot, replacement)
        logger.info(f"[ai] spliced chapter_id={chapter_id} span=[{snapshot.start},{snapshot.end}) chars={len(replacement)}")
        yield StreamFragment("", done=True)

    def _splice(self, chapter_id: int, snapshot: SpanSnapshot, replacement: str) -> None:
        with get_db_session(self._session_factory) as session:
            current = session.execute(
                select(chapters.c.content).where(chapters.c.id == chapter_id).with_for_update()
            ).scalar_one_or_none()
            if current is None:
                raise NotFoundError("Chapter not found")
            content = snapshot.apply(current, replacement)
            self.projects.save_chapter_content(session, chapter_id, content, ChapterStatus.EDITED)
        if self.analysis is not None:
            self.analysis.enqueue_readability(chapter_id, content)
