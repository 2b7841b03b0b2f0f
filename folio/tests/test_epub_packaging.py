"""Tests for export packaging (HTML documents and EPUB books)."""

import io
import zipfile
from datetime import date
from xml.etree import ElementTree as ET

from folio.features.assembly.packaging import EPUB_MIMETYPE, package_document
from folio.features.assembly.service import DocumentAssembler
from folio.models.artifact import ExportFormat
from folio.models.project import Chapter, Project, ProjectMetadata

TODAY = date(2024, 5, 1)
OPF = "{http://www.idpf.org/2007/opf}"
DC = "{http://purl.org/dc/elements/1.1/}"


def make_project():
    chapters = [
        Chapter(id=7, project_id=2, title="One", content="Hello *world*.\nNext line.", order=1),
        Chapter(id=9, project_id=2, title="Two", content="# Heading\n\n[link](https://a.test/?x=1&y=2)", order=2),
    ]
    return Project(
        id=2,
        user_id="u",
        title="Sea & Sky",
        genre="Fiction",
        language="French",
        metadata=ProjectMetadata(author_name="Ann", isbn="9780000000001", categories=["Adventure"]),
        chapters=chapters,
    )


def package(fmt, watermark=False):
    project = make_project()
    return package_document(fmt, DocumentAssembler(product_name="Folio"), project, project.chapters, None, watermark, TODAY)


def read_epub(packaged):
    with zipfile.ZipFile(io.BytesIO(packaged.data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def opf_root(files):
    return ET.fromstring(next(data for name, data in files.items() if name.endswith(".opf")))


def test_html_and_pdf_are_the_html_document():
    html = package(ExportFormat.HTML)
    pdf = package(ExportFormat.PDF)
    assert html.content_type == "text/html"
    assert html.extension == "html"
    assert pdf.data == html.data
    assert html.data.decode("utf-8").startswith("<!DOCTYPE html>")


def test_epub_container_layout():
    packaged = package(ExportFormat.EPUB)
    assert packaged.content_type == EPUB_MIMETYPE
    assert packaged.extension == "epub"

    with zipfile.ZipFile(io.BytesIO(packaged.data)) as zf:
        names = zf.namelist()
        assert names[0] == "mimetype"
        assert zf.getinfo("mimetype").compress_type == zipfile.ZIP_STORED
        assert zf.read("mimetype") == EPUB_MIMETYPE.encode()
    assert "META-INF/container.xml" in names
    for doc in ("front", "chapter-7", "chapter-9", "back", "nav", "style"):
        assert any(name.endswith(f"/{doc}.xhtml") or name.endswith(f"/{doc}.css") for name in names), doc


def test_epub_documents_are_well_formed_xml():
    for name, data in read_epub(package(ExportFormat.EPUB, watermark=True)).items():
        if name.endswith((".xhtml", ".opf", ".xml", ".ncx")):
            ET.fromstring(data)


def test_epub_package_metadata_and_spine():
    root = opf_root(read_epub(package(ExportFormat.EPUB)))

    metadata = root.find(f"{OPF}metadata")
    assert metadata.find(f"{DC}title").text == "Sea & Sky"
    assert metadata.find(f"{DC}creator").text == "Ann"
    assert metadata.find(f"{DC}language").text == "fr"
    assert metadata.find(f"{DC}identifier").text == "urn:isbn:9780000000001"
    assert metadata.find(f"{DC}date").text == "2024-05-01"
    assert [s.text for s in metadata.findall(f"{DC}subject")] == ["Adventure"]

    spine = [item.get("idref") for item in root.find(f"{OPF}spine")]
    assert spine == ["nav", "front", "chapter-7", "chapter-9", "back"]


def test_epub_nav_matches_chapters():
    files = read_epub(package(ExportFormat.EPUB))
    nav = next(data for name, data in files.items() if name.endswith("nav.xhtml")).decode("utf-8")
    chapter = next(data for name, data in files.items() if name.endswith("chapter-9.xhtml")).decode("utf-8")
    assert 'href="chapter-7.xhtml#chapter-7">1. One</a>' in nav
    assert 'href="chapter-9.xhtml#chapter-9">2. Two</a>' in nav
    assert '<section id="chapter-9" class="chapter"' in chapter
    assert "Chapter 2: Two" in chapter


def test_mobi_is_packaged_as_epub():
    mobi = package(ExportFormat.MOBI)
    assert mobi.content_type == EPUB_MIMETYPE
    assert mobi.extension == "epub"


def test_epub_documents_are_reproducible():
    first = read_epub(package(ExportFormat.EPUB))
    second = read_epub(package(ExportFormat.EPUB))
    assert first.keys() == second.keys()
    for name in first:
        if name.endswith(".xhtml"):
            assert first[name] == second[name], name


def test_epub_watermark_stays_outside_chapter_sections():
    files = read_epub(package(ExportFormat.EPUB, watermark=True))
    chapter = next(data for name, data in files.items() if name.endswith("chapter-7.xhtml")).decode("utf-8")
    css = next(data for name, data in files.items() if name.endswith("style.css")).decode("utf-8")
    assert 'class="watermark"' in chapter
    section = chapter[chapter.index("<section"):chapter.index("</section>")]
    assert "watermark" not in section
    assert ".watermark" in css

    plain = read_epub(package(ExportFormat.EPUB))
    plain_chapter = next(data for name, data in plain.items() if name.endswith("chapter-7.xhtml")).decode("utf-8")
    assert 'class="watermark"' not in plain_chapter
