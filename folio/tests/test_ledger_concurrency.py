"""Concurrent spends against one account never overspend."""

from concurrent.futures import ThreadPoolExecutor

from folio.core.errors import InsufficientCreditsError


def test_hundred_concurrent_spends_on_fifty_credits(ledger):
    ledger.grant_credits("alice", 40)
    assert ledger.get_account("alice").ai_credits == 50

    def spend(i):
        try:
            ledger.check_and_consume_credits("alice", 1, reference_id=f"call-{i}")
            return True
        except InsufficientCreditsError:
            return False

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(spend, range(100)))

    assert results.count(True) == 50
    assert results.count(False) == 50

    account = ledger.get_account("alice")
    assert account.ai_credits == 0
    consumes = [e for e in ledger.get_credit_history("alice", limit=500) if e.event_type == "CONSUME"]
    assert len(consumes) == 50
    assert sorted(e.balance_after for e in consumes) == list(range(50))


def test_concurrent_project_reservations_stop_at_limit(ledger):
    from folio.core.errors import LimitExceededError

    ledger.get_or_create_account("bob")

    def reserve(_):
        try:
            ledger.reserve_project_slot("bob")
            return True
        except LimitExceededError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(reserve, range(12)))

    assert results.count(True) == 3
    assert ledger.get_account("bob").active_projects == 3


def test_concurrent_chapter_creates_stop_at_limit(projects):
    from folio.core.errors import LimitExceededError
    from folio.models.project import ChapterCreate, ProjectCreate

    project = projects.create_project("carol", ProjectCreate(title="Almanac", genre="Reference"))
    for i in range(18):
        projects.create_chapter("carol", project.id, ChapterCreate(title=f"Entry {i}"))

    def create(i):
        try:
            projects.create_chapter("carol", project.id, ChapterCreate(title=f"Late {i}"))
            return True
        except LimitExceededError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(create, range(16)))

    assert results.count(True) == 2
    chapters = projects.list_chapters("carol", project.id)
    assert len(chapters) == 20
    assert [c.order for c in chapters] == list(range(1, 21))
