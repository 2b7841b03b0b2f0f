"""
Packaging: turn an assembled project into the bytes stored for each export format.

- html: the assembled document
- pdf: the same document, print-ready (binary conversion happens downstream)
- epub / mobi: an EPUB 3 book built with ebooklib; Kindle ingests EPUB directly

Book content is reproducible: the identifier comes from the project and
`dcterms:modified` from `today`, never from the wall clock.
"""

import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from html import escape
from typing import List, Optional, Sequence

from ebooklib import epub

from folio.features.assembly.service import DocumentAssembler, chapter_anchor, language_tag, watermark_banner
from folio.features.assembly.templates import DEFAULT_STYLE, render_css
from folio.models.artifact import ExportFormat
from folio.models.project import Chapter, Project
from folio.models.template import Template

logger = logging.getLogger(__name__)

EPUB_MIMETYPE = "application/epub+zip"
HTML_MIMETYPE = "text/html"


@dataclass(frozen=True)
class PackagedDocument:
    data: bytes
    content_type: str
    extension: str


def _set_metadata(book: epub.EpubBook, project: Project, lang: str, today: date) -> None:
    meta = project.metadata
    book.set_identifier(f"urn:isbn:{meta.isbn}" if meta.isbn else f"urn:folio:project:{project.id}")
    book.set_title(project.title)
    book.set_language(lang)
    book.add_author(meta.author_name or "Unknown Author")
    book.add_metadata("DC", "date", (meta.publication_date or today).isoformat())
    if meta.publisher_name:
        book.add_metadata("DC", "publisher", meta.publisher_name)
    if project.description:
        book.add_metadata("DC", "description", project.description)
    for subject in list(meta.categories) + list(meta.keywords):
        book.add_metadata("DC", "subject", subject)


def _document(
    book: epub.EpubBook, uid: str, title: str, lang: str, body: List[str], css: epub.EpubItem
) -> epub.EpubHtml:
    item = epub.EpubHtml(uid=uid, title=title, file_name=f"{uid}.xhtml", lang=lang)
    item.content = ("<html><body>" + "\n".join(body) + "</body></html>").encode("utf-8")
    item.add_item(css)
    book.add_item(item)
    return item


def build_epub(
    assembler: DocumentAssembler,
    project: Project,
    chapters: Sequence[Chapter],
    template: Optional[Template],
    watermark: bool,
    today: date,
) -> bytes:
    lang = language_tag(project.language)
    overlay = (
        [f'<div class="watermark" aria-hidden="true">{escape(watermark_banner(assembler.product_name))}</div>']
        if watermark else []
    )

    book = epub.EpubBook()
    _set_metadata(book, project, lang, today)

    css = epub.EpubItem(
        uid="style",
        file_name="style.css",
        media_type="text/css",
        content=render_css(template.style if template else DEFAULT_STYLE, watermark).encode("utf-8"),
    )
    book.add_item(css)

    front = _document(book, "front", project.title, lang, overlay + assembler.front_matter(project, today), css)
    sections = []
    links = []
    for position, chapter in enumerate(chapters, start=1):
        anchor = chapter_anchor(chapter)
        body = overlay + [assembler.render_chapter(chapter, position)]
        sections.append(_document(book, anchor, chapter.title, lang, body, css))
        links.append(epub.Link(f"{anchor}.xhtml#{anchor}", f"{position}. {chapter.title}", anchor))
    back = _document(book, "back", project.title, lang, overlay + assembler.back_matter(project), css)

    book.toc = links
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", front] + sections + [back]

    buf = io.BytesIO()
    epub.write_epub(buf, book, {"mtime": datetime.combine(today, time.min)})
    logger.debug(f"[export] epub project_id={project.id} chapters={len(sections)} bytes={buf.tell()}")
    return buf.getvalue()


def package_document(
    fmt: ExportFormat,
    assembler: DocumentAssembler,
    project: Project,
    chapters: Sequence[Chapter],
    template: Optional[Template],
    watermark: bool,
    today: date,
) -> PackagedDocument:
    if fmt in (ExportFormat.EPUB, ExportFormat.MOBI):
        data = build_epub(assembler, project, chapters, template, watermark, today)
        return PackagedDocument(data=data, content_type=EPUB_MIMETYPE, extension="epub")

    document = assembler.assemble(project, chapters, template, watermark, today=today)
    return PackagedDocument(data=document.encode("utf-8"), content_type=HTML_MIMETYPE, extension="html")
