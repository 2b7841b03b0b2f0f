# folio/conftest.py
import os
import tempfile

# Settings are read at import time, so the test environment is fixed before
# anything under folio is imported.
_TMP = tempfile.mkdtemp(prefix="folio-tests-")
os.environ["ENV"] = "test"
os.environ["SKIP_ENV_VALIDATION"] = "1"
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'folio.db')}"
os.environ["OBJECT_STORE_ROOT"] = os.path.join(_TMP, "objects")
os.environ["AUTH_SECRET_KEY"] = "test-auth-secret-key-0123456789abcdef"
os.environ["OBJECT_STORE_SIGNING_KEY"] = "test-object-store-signing-key"
os.environ.pop("GROQ_API_KEY", None)

import pytest


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """Fresh tables for every test."""
    from folio.core.database import reset_database

    reset_database()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_metrics():
    from folio.core.metrics import METRICS

    METRICS.reset()
    yield


@pytest.fixture
def ledger():
    from folio.features.entitlements.service import EntitlementLedger

    return EntitlementLedger()


@pytest.fixture
def store():
    from folio.tests.mocks import FakeObjectStore

    return FakeObjectStore()


@pytest.fixture
def queue():
    from folio.tests.mocks import FakeQueue

    return FakeQueue()


@pytest.fixture
def projects(ledger, store, queue):
    from folio.features.analysis.jobs import AnalysisDispatcher
    from folio.features.projects.service import ProjectService

    return ProjectService(ledger=ledger, store=store, analysis=AnalysisDispatcher(queue=queue))


@pytest.fixture
def template_service():
    from folio.features.templates.service import TemplateService

    service = TemplateService()
    service.seed_defaults()
    return service


@pytest.fixture
def orchestrator(ledger, store, projects, template_service):
    from folio.features.exports.service import ExportOrchestrator

    return ExportOrchestrator(ledger=ledger, store=store, projects=projects, templates=template_service)
