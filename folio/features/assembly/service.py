"""
DocumentAssembler: project + ordered chapters + style -> one self-contained HTML document.

Output order is fixed: metadata head, cover, copyright, table of contents,
chapters, back matter. Assembly is deterministic; the only time-dependent
inputs (copyright year, default publication date) come from `today`.
"""

import logging
import re
from datetime import date
from html import escape
from typing import List, Optional, Sequence

from folio.core.clock import utcnow
from folio.core.config import settings
from folio.features.assembly.templates import DEFAULT_STYLE, render_css
from folio.features.markup.service import MarkupTransformer
from folio.models.project import Chapter, Project
from folio.models.template import Template

logger = logging.getLogger(__name__)

LANGUAGE_CODES = {
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "portuguese": "pt",
    "dutch": "nl",
    "russian": "ru",
    "japanese": "ja",
    "chinese": "zh",
    "korean": "ko",
    "arabic": "ar",
    "hindi": "hi",
    "polish": "pl",
    "swedish": "sv",
}

_BCP47 = re.compile(r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{2,8})*$")

RIGHTS_NOTICE = (
    "All rights reserved. No part of this publication may be reproduced, distributed, "
    "or transmitted in any form or by any means without the prior written permission "
    "of the publisher."
)


def language_tag(language: Optional[str]) -> str:
    """Map a language name ("English") or tag ("en-GB") to a BCP-47 tag; "und" when unknown."""
    if not language:
        return "en"
    value = language.strip()
    mapped = LANGUAGE_CODES.get(value.lower())
    if mapped:
        return mapped
    if _BCP47.match(value):
        return value.lower() if "-" not in value else value
    return "und"


def watermark_banner(product_name: str) -> str:
    return f"CREATED WITH {product_name.upper()} - UPGRADE TO REMOVE"


def chapter_anchor(chapter: Chapter) -> str:
    return f"chapter-{chapter.id}"


class DocumentAssembler:
    def __init__(self, transformer: Optional[MarkupTransformer] = None, product_name: Optional[str] = None):
        self.transformer = transformer or MarkupTransformer()
        self.product_name = product_name or settings.PRODUCT_NAME

    def assemble(
        self,
        project: Project,
        chapters: Sequence[Chapter],
        template: Optional[Template] = None,
        watermark: bool = False,
        *,
        today: Optional[date] = None,
    ) -> str:
        """
        Render the full document.

        Args:
            project: Project carrying title, language and metadata
            chapters: Chapters already sorted by `order`; numbered 1..n as given
            template: Style template; built-in defaults when None
            watermark: Add the watermark overlay (never touches <main>)
            today: Date used for the copyright year and default publication date
        """
        today = today or utcnow().date()
        style = template.style if template else DEFAULT_STYLE
        meta = project.metadata

        title = escape(project.title)
        author = escape(meta.author_name or "Unknown Author")
        publisher = escape(meta.publisher_name) if meta.publisher_name else ""
        pub_date = (meta.publication_date or today).isoformat()

        parts: List[str] = [
            "<!DOCTYPE html>",
            f'<html lang="{language_tag(project.language)}">',
            "<head>",
            *self._head(project, title, author, publisher, pub_date),
            f"<style>\n{render_css(style, watermark)}</style>",
            "</head>",
            "<body>",
        ]
        if watermark:
            parts.append(
                f'<div class="watermark" aria-hidden="true" role="presentation">'
                f"{escape(watermark_banner(self.product_name))}</div>"
            )
        parts.append('<a href="#main-content" class="skip-to-content">Skip to main content</a>')
        parts.extend(self._cover(project, title, author, publisher))
        parts.extend(self._copyright(title, author, publisher, pub_date, meta.isbn, today))
        parts.extend(self._toc(chapters))
        parts.append('<main id="main-content" role="main">')
        for position, chapter in enumerate(chapters, start=1):
            parts.append(self.render_chapter(chapter, position))
        parts.append("</main>")
        parts.extend(self._back_matter(title, meta.author_name))
        parts.extend(["</body>", "</html>"])

        logger.debug(
            f"[assembly] project_id={project.id} chapters={len(chapters)} "
            f"template={template.id if template else None} watermark={watermark}"
        )
        return "\n".join(parts) + "\n"

    def render_chapter(self, chapter: Chapter, position: int) -> str:
        anchor = chapter_anchor(chapter)
        body = self.transformer.transform(chapter.content)
        return (
            f'<section id="{anchor}" class="chapter" aria-labelledby="{anchor}-title">\n'
            f'<h2 id="{anchor}-title">Chapter {position}: {escape(chapter.title)}</h2>\n'
            f'<div class="chapter-content">\n{body}\n</div>\n'
            "</section>"
        )

    def front_matter(self, project: Project, today: date) -> List[str]:
        """Cover and copyright sections, as used by container formats that split the document."""
        meta = project.metadata
        title = escape(project.title)
        author = escape(meta.author_name or "Unknown Author")
        publisher = escape(meta.publisher_name) if meta.publisher_name else ""
        pub_date = (meta.publication_date or today).isoformat()
        return self._cover(project, title, author, publisher) + self._copyright(
            title, author, publisher, pub_date, meta.isbn, today
        )

    def back_matter(self, project: Project) -> List[str]:
        return self._back_matter(escape(project.title), project.metadata.author_name)

    def _head(self, project: Project, title: str, author: str, publisher: str, pub_date: str) -> List[str]:
        meta = project.metadata
        description = escape(project.description or "")
        lines = [
            '<meta charset="UTF-8">',
            '<meta name="viewport" content="width=device-width, initial-scale=1.0">',
            f"<title>{title}</title>",
            f'<meta name="author" content="{author}">',
            f'<meta name="description" content="{description}">',
            f'<meta name="keywords" content="{escape(", ".join(meta.keywords))}">',
            f'<meta name="dcterms.date" content="{pub_date}">',
            f'<meta name="dcterms.language" content="{language_tag(project.language)}">',
        ]
        if meta.isbn:
            lines.append(f'<meta name="dcterms.identifier" content="ISBN:{escape(meta.isbn)}">')
        if publisher:
            lines.append(f'<meta name="dcterms.publisher" content="{publisher}">')
        if meta.categories:
            lines.append(f'<meta name="dcterms.subject" content="{escape("; ".join(meta.categories))}">')
        if meta.series:
            series = meta.series.name + (f" #{meta.series.number}" if meta.series.number else "")
            lines.append(f'<meta name="book:series" content="{escape(series)}">')
        if meta.age_range_min is not None or meta.age_range_max is not None:
            audience = f"{meta.age_range_min if meta.age_range_min is not None else ''}-" \
                       f"{meta.age_range_max if meta.age_range_max is not None else ''}"
            lines.append(f'<meta name="audience" content="ages {audience}">')
        lines.extend([
            '<meta property="og:type" content="book">',
            f'<meta property="og:title" content="{title}">',
            f'<meta property="book:author" content="{author}">',
        ])
        if meta.isbn:
            lines.append(f'<meta property="book:isbn" content="{escape(meta.isbn)}">')
        return lines

    def _cover(self, project: Project, title: str, author: str, publisher: str) -> List[str]:
        lines = ['<section class="cover" role="doc-cover">']
        if project.cover_image:
            lines.append(
                f'<img src="{escape(project.cover_image)}" alt="Cover image for {title}" class="cover-image">'
            )
        else:
            lines.append(f'<div class="cover-placeholder" role="img" aria-label="Cover for {title}"></div>')
        lines.append(f"<h1>{title}</h1>")
        lines.append(f'<p class="author">by {author}</p>')
        if publisher:
            lines.append(f'<p class="publisher">{publisher}</p>')
        lines.append("</section>")
        return lines

    def _copyright(
        self, title: str, author: str, publisher: str, pub_date: str, isbn: Optional[str], today: date
    ) -> List[str]:
        lines = [
            '<section class="copyright" role="doc-copyright">',
            f"<p><strong>{title}</strong></p>",
            f"<p>Copyright \u00a9 {today.year} {author}</p>",
            f"<p>Published: {pub_date}</p>",
        ]
        if isbn:
            lines.append(f"<p>ISBN: {escape(isbn)}</p>")
        if publisher:
            lines.append(f"<p>Publisher: {publisher}</p>")
        lines.append(f"<p>{RIGHTS_NOTICE}</p>")
        lines.append("</section>")
        return lines

    def _toc(self, chapters: Sequence[Chapter]) -> List[str]:
        lines = [
            '<nav class="toc" role="doc-toc" aria-label="Table of Contents">',
            "<h2>Table of Contents</h2>",
            "<ol>",
        ]
        for position, chapter in enumerate(chapters, start=1):
            lines.append(f'<li><a href="#{chapter_anchor(chapter)}">{position}. {escape(chapter.title)}</a></li>')
        lines.extend(["</ol>", "</nav>"])
        return lines

    def _back_matter(self, title: str, author_name: Optional[str]) -> List[str]:
        if author_name:
            thanks = f"Thank you for reading {title} by {escape(author_name)}."
        else:
            thanks = f"Thank you for reading {title}."
        return [
            '<section class="back-matter" role="doc-backmatter">',
            "<hr>",
            f"<p>{thanks}</p>",
            "</section>",
        ]
