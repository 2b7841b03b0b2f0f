"""Style templates: seeded defaults, lookup and guarded updates."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import exists, func, select, update
from sqlalchemy.orm import Session

from folio.core.clock import as_utc, utcnow
from folio.core.database import export_artifacts, get_db_session, templates
from folio.core.errors import ConflictError, NotFoundError
from folio.models.template import StyleParameters, Template, TemplateUpdate

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Modern Fiction",
        "description": "Clean, contemporary design perfect for novels and fiction",
        "category": "fiction",
        "style": StyleParameters(font_family="Georgia, serif", font_size="16px", line_height="1.8", chapter_title_size="32px"),
        "preview_url": "https://images.unsplash.com/photo-1512820790803-83ca734da794?w=400",
    },
    {
        "name": "Academic",
        "description": "Professional layout for academic papers and research",
        "category": "academic",
        "style": StyleParameters(
            font_family="Times New Roman, serif", font_size="12px", line_height="2.0",
            text_align="left", chapter_title_size="18px",
        ),
        "preview_url": "https://images.unsplash.com/photo-1456513080510-7bf3a84b82f8?w=400",
    },
    {
        "name": "Minimalist",
        "description": "Simple, elegant design with plenty of white space",
        "category": "non-fiction",
        "style": StyleParameters(
            font_family="Helvetica, Arial, sans-serif", font_size="14px", line_height="1.6",
            max_width="700px", text_align="left", chapter_title_size="28px",
        ),
        "preview_url": "https://images.unsplash.com/photo-1507003211169-0a1dd7228f2d?w=400",
    },
    {
        "name": "Classic Literature",
        "description": "Traditional styling reminiscent of classic books",
        "category": "fiction",
        "style": StyleParameters(font_family="Garamond, serif", font_size="15px", line_height="1.9", chapter_title_size="30px"),
        "preview_url": "https://images.unsplash.com/photo-1481627834876-b7833e8f5570?w=400",
    },
]


def row_to_template(row) -> Template:
    return Template(
        id=row.id,
        name=row.name,
        description=row.description,
        category=row.category,
        style=StyleParameters.model_validate(row.style_json or {}),
        preview_url=row.preview_url,
        created_at=as_utc(row.created_at),
    )


class TemplateService:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def seed_defaults(self) -> int:
        """Insert the default templates when the table is empty. Returns how many were added."""
        with get_db_session(self._session_factory) as session:
            count = session.execute(select(func.count()).select_from(templates)).scalar_one()
            if count:
                return 0
            now = utcnow()
            for entry in DEFAULT_TEMPLATES:
                session.execute(
                    templates.insert().values(
                        name=entry["name"],
                        description=entry["description"],
                        category=entry["category"],
                        style_json=entry["style"].model_dump(mode="json"),
                        preview_url=entry["preview_url"],
                        created_at=now,
                    )
                )
        logger.info(f"[templates] seeded {len(DEFAULT_TEMPLATES)} default templates")
        return len(DEFAULT_TEMPLATES)

    def list_templates(self) -> List[Template]:
        with get_db_session(self._session_factory) as session:
            rows = session.execute(select(templates).order_by(templates.c.name.asc())).all()
            return [row_to_template(r) for r in rows]

    def get_template(self, template_id: int, session: Optional[Session] = None, for_update: bool = False) -> Template:
        if session is not None:
            return self._get(session, template_id, for_update)
        with get_db_session(self._session_factory) as own:
            return self._get(own, template_id)

    def _get(self, session: Session, template_id: int, for_update: bool = False) -> Template:
        query = select(templates).where(templates.c.id == template_id)
        if for_update:
            query = query.with_for_update()
        row = session.execute(query).first()
        if row is None:
            raise NotFoundError("Template not found")
        return row_to_template(row)

    def update_template(self, template_id: int, patch: TemplateUpdate) -> Template:
        """
        Update a template that no export references yet.

        Raises:
            ConflictError: an export artifact already references the template
            NotFoundError: no such template
        """
        values: Dict[str, Any] = {}
        for field in ("description", "category", "preview_url"):
            if field in patch.model_fields_set:
                values[field] = getattr(patch, field)
        if patch.style is not None:
            values["style_json"] = patch.style.model_dump(mode="json")

        with get_db_session(self._session_factory) as session:
            if values:
                # Row lock first, so the reference check sees any export recorded meanwhile.
                self._get(session, template_id, for_update=True)
                referenced = exists().where(export_artifacts.c.template_id == template_id)
                result = session.execute(
                    update(templates).where(templates.c.id == template_id, ~referenced).values(**values)
                )
                if result.rowcount == 0:
                    raise ConflictError("Template is referenced by an export and can no longer change")
            return self._get(session, template_id)
