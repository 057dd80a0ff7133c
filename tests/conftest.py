"""Configuration de test pour pytest.

L'environnement est fixé avant tout import de l'application (rate limit large, rôle
tassologue pour une adresse connue, aucun Redis). Chaque test repart d'un conteneur neuf:
collections en mémoire, LLM et transcription factices.
"""

import os
import sys

# Ensure project root is on sys.path so that
# imports like `from sipnread...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ["RATE_LIMIT_CLIENT_QPS"] = "1000"
os.environ["TASSOLOGIST_EMAILS"] = "roxy@example.com"
os.environ["LLM_GUARD_ENABLE"] = "true"
os.environ["APP_DEBUG"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("REQUIRE_REDIS", None)
os.environ.pop("GCS_BUCKET_NAME", None)
os.environ.pop("OTLP_ENDPOINT", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tests.fakes import TASSOLOGIST_EMAIL, FakeSpeech, StubLLM, signup_and_login  # noqa: E402
from sipnread.core.container import container  # noqa: E402
from sipnread.domain.flows import InterpretationFlows  # noqa: E402
from sipnread.domain.generation import GenerativeExecutor  # noqa: E402
from sipnread.domain.services import (  # noqa: E402
    ContentService,
    NotificationService,
    PersonalizationService,
    ProfileService,
    ReadingService,
    TranscriptionService,
)
from sipnread.infra.repositories import InMemoryUserRepo, build_collections  # noqa: E402
from sipnread.infra.storage import InMemoryStorage  # noqa: E402


@pytest.fixture(autouse=True)
def app_container():
    """Remplace les composants du conteneur global par des versions mémoire/factices."""
    saved = dict(vars(container))
    collections = build_collections(None)
    container.collections = collections
    container.user_repo = InMemoryUserRepo()
    container.storage_backend = "memory"
    container.profiles = ProfileService(collections["profiles"])
    container.readings = ReadingService(collections["readings"], container.profiles)
    container.notifications = NotificationService(collections["mail"], "http://app.test")
    container.personalization = PersonalizationService(
        collections["personalized_readings"],
        container.readings,
        container.profiles,
        container.notifications,
        price=50,
    )
    container.content = ContentService(collections["tiles"], collections["audio_tracks"])
    container.llm = StubLLM()
    container.flows = InterpretationFlows(GenerativeExecutor(container.llm))
    container.object_storage = InMemoryStorage()
    container.speech = FakeSpeech()
    container.transcription = TranscriptionService(
        container.personalization, container.readings, container.object_storage, container.speech
    )
    yield container
    vars(container).clear()
    vars(container).update(saved)


@pytest.fixture
def llm(app_container) -> StubLLM:
    return app_container.llm


@pytest.fixture
def speech(app_container) -> FakeSpeech:
    return app_container.speech


@pytest.fixture
def client() -> TestClient:
    from sipnread.app.main import app

    return TestClient(app)


@pytest.fixture
def user_headers(client: TestClient) -> dict[str, str]:
    return signup_and_login(client, "ada@example.com", name="Ada")


@pytest.fixture
def tassologist_headers(client: TestClient) -> dict[str, str]:
    return signup_and_login(client, TASSOLOGIST_EMAIL, name="Roxy")
