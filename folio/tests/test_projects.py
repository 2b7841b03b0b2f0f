"""Tests for project and chapter management."""

import pytest

from folio.core.errors import LimitExceededError, NotFoundError, ValidationError
from folio.features.analysis.readability import content_hash
from folio.models.project import (
    ChapterCreate,
    ChapterStatus,
    ChapterUpdate,
    OutlineEntry,
    ProjectCreate,
    ProjectMetadata,
    ProjectOutline,
    ProjectUpdate,
)


def new_project(projects, user_id="alice", title="My Book"):
    return projects.create_project(user_id, ProjectCreate(title=title, genre="Fantasy"))


def test_create_project_reserves_a_slot(projects, ledger):
    project = new_project(projects)
    assert project.title == "My Book"
    assert project.language == "English"
    assert project.metadata == ProjectMetadata()
    assert project.chapters == []
    assert ledger.get_account("alice").active_projects == 1


def test_project_limit_leaves_no_partial_project(projects, ledger):
    for i in range(3):
        new_project(projects, title=f"Book {i}")
    with pytest.raises(LimitExceededError):
        new_project(projects, title="One too many")

    assert len(projects.list_projects("alice")) == 3
    assert ledger.get_account("alice").active_projects == 3


def test_projects_are_private_to_their_owner(projects):
    project = new_project(projects)
    with pytest.raises(NotFoundError):
        projects.get_project("mallory", project.id)
    with pytest.raises(NotFoundError):
        projects.create_chapter("mallory", project.id, ChapterCreate(title="Sneaky"))
    assert projects.list_projects("mallory") == []


def test_update_project_metadata_and_outline(projects):
    project = new_project(projects)
    outline = ProjectOutline(premise="A quest", chapters=[OutlineEntry(order=1, title="Call", synopsis="Hero leaves")])
    updated = projects.update_project(
        "alice",
        project.id,
        ProjectUpdate(
            description="Epic",
            metadata=ProjectMetadata(author_name="Ann", keywords=["quest", "  "]),
            outline=outline,
        ),
    )
    assert updated.title == "My Book"
    assert updated.description == "Epic"
    assert updated.metadata.author_name == "Ann"
    assert updated.metadata.keywords == ["quest"]
    assert updated.outline.entry_for(1).synopsis == "Hero leaves"


def test_required_fields_cannot_be_blanked(projects):
    project = new_project(projects)
    with pytest.raises(ValidationError):
        projects.update_project("alice", project.id, ProjectUpdate(genre=""))


def test_delete_project_releases_the_slot(projects, ledger):
    project = new_project(projects)
    projects.create_chapter("alice", project.id, ChapterCreate(title="One", content="Text"))
    projects.delete_project("alice", project.id)

    assert ledger.get_account("alice").active_projects == 0
    with pytest.raises(NotFoundError):
        projects.get_project("alice", project.id)


def test_chapter_order_is_never_reused(projects):
    project = new_project(projects)
    first = projects.create_chapter("alice", project.id, ChapterCreate(title="One"))
    second = projects.create_chapter("alice", project.id, ChapterCreate(title="Two"))
    third = projects.create_chapter("alice", project.id, ChapterCreate(title="Three"))
    assert [first.order, second.order, third.order] == [1, 2, 3]

    projects.delete_chapter("alice", third.id)
    fourth = projects.create_chapter("alice", project.id, ChapterCreate(title="Four"))
    assert fourth.order == 4

    titles = [c.title for c in projects.get_project("alice", project.id).chapters]
    assert titles == ["One", "Two", "Four"]


def test_chapter_limit_per_project(projects):
    project = new_project(projects)
    for i in range(20):
        projects.create_chapter("alice", project.id, ChapterCreate(title=f"Chapter {i}"))
    with pytest.raises(LimitExceededError):
        projects.create_chapter("alice", project.id, ChapterCreate(title="Chapter 21"))


def test_chapter_writes_schedule_readability(projects, queue):
    project = new_project(projects)
    empty = projects.create_chapter("alice", project.id, ChapterCreate(title="Empty"))
    assert queue.jobs == []

    content = "The cat sat on the mat. It was happy."
    chapter = projects.update_chapter("alice", empty.id, ChapterUpdate(content=content))
    assert chapter.word_count == 9
    assert len(queue.jobs) == 1
    job = queue.jobs[0]
    assert job["func"] == "folio.features.analysis.jobs.recompute_readability"
    assert job["args"] == (chapter.id, content_hash(content))
    assert job["job_id"] == f"readability:{chapter.id}:{content_hash(content)[:12]}"


def test_update_chapter_status_without_content(projects, queue):
    project = new_project(projects)
    chapter = projects.create_chapter("alice", project.id, ChapterCreate(title="One"))
    updated = projects.update_chapter("alice", chapter.id, ChapterUpdate(status=ChapterStatus.EDITED, title="Uno"))
    assert updated.status == ChapterStatus.EDITED
    assert updated.title == "Uno"
    assert queue.jobs == []


def test_cover_upload_url(projects):
    project = new_project(projects)
    result = projects.generate_cover_upload_url("alice", project.id, ".PNG")
    assert result["expires_in"] == 3600
    assert f"/cover-images/{project.id}-" in result["public_url"]
    assert result["public_url"].endswith(".png")
    assert result["upload_url"].startswith(result["public_url"] + "?")

    with pytest.raises(ValidationError):
        projects.generate_cover_upload_url("alice", project.id, "exe")
    with pytest.raises(NotFoundError):
        projects.generate_cover_upload_url("mallory", project.id, "png")
