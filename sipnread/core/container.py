"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (settings, dépôts, clients distants, services) et expose
un singleton `container` utilisé par le reste de l'application. Les clients distants (modèle
génératif, stockage, transcription) sont construits au premier accès.
"""

from functools import cached_property

from sipnread.core.settings import get_settings
from sipnread.domain.flows import InterpretationFlows
from sipnread.domain.generation import GenerativeExecutor
from sipnread.domain.services import (
    ContentService,
    NotificationService,
    PersonalizationService,
    ProfileService,
    ReadingService,
    TranscriptionService,
)
from sipnread.infra.llm.base import LLM
from sipnread.infra.repositories import InMemoryUserRepo, RedisUserRepo, build_collections
from sipnread.infra.speech_client import GoogleSpeechClient, SpeechClient
from sipnread.infra.storage import GCSStorage, InMemoryStorage, ObjectStorage


class Container:
    def __init__(self):
        self.settings = get_settings()
        s = self.settings
        if s.REDIS_URL:
            try:
                self.collections = build_collections(s.REDIS_URL)
                self.user_repo = RedisUserRepo(s.REDIS_URL)
                self.storage_backend = "redis"
            except Exception as err:
                if s.REQUIRE_REDIS:
                    raise RuntimeError("Redis required but unavailable") from err
                self.collections = build_collections(None)
                self.user_repo = InMemoryUserRepo()
                self.storage_backend = "memory-fallback"
        else:
            if s.REQUIRE_REDIS:
                raise RuntimeError("Redis required but REDIS_URL not set")
            self.collections = build_collections(None)
            self.user_repo = InMemoryUserRepo()
            self.storage_backend = "memory"

        self.profiles = ProfileService(self.collections["profiles"])
        self.readings = ReadingService(self.collections["readings"], self.profiles)
        self.notifications = NotificationService(self.collections["mail"], s.APP_PUBLIC_URL)
        self.personalization = PersonalizationService(
            self.collections["personalized_readings"],
            self.readings,
            self.profiles,
            self.notifications,
            price=s.PERSONALIZED_READING_PRICE,
        )
        self.content = ContentService(self.collections["tiles"], self.collections["audio_tracks"])

    @cached_property
    def llm(self) -> LLM:
        s = self.settings
        if s.LLM_PROVIDER == "openai":
            from sipnread.infra.llm.openai_client import OpenAILLM  # noqa: PLC0415

            return OpenAILLM(api_key=s.OPENAI_API_KEY, model=s.OPENAI_MODEL, timeout_s=s.LLM_TIMEOUT_S)
        from sipnread.infra.llm.gemini_client import GeminiLLM  # noqa: PLC0415

        return GeminiLLM(api_key=s.GEMINI_API_KEY, model=s.GEMINI_MODEL)

    @cached_property
    def flows(self) -> InterpretationFlows:
        return InterpretationFlows(
            GenerativeExecutor(self.llm),
            max_prompt_chars=self.settings.PROMPT_MAX_CHARS,
            enforce_acknowledgement=self.settings.ENFORCE_SYMBOL_ACKNOWLEDGEMENT,
        )

    @cached_property
    def object_storage(self) -> ObjectStorage:
        s = self.settings
        if s.GCS_BUCKET_NAME:
            return GCSStorage(s.GCS_BUCKET_NAME, project=s.GOOGLE_CLOUD_PROJECT)
        return InMemoryStorage()

    @cached_property
    def speech(self) -> SpeechClient:
        s = self.settings
        return GoogleSpeechClient(
            base_url=s.SPEECH_API_BASE,
            language_code=s.SPEECH_LANGUAGE_CODE,
            model=s.SPEECH_MODEL,
        )

    @cached_property
    def transcription(self) -> TranscriptionService:
        return TranscriptionService(
            self.personalization, self.readings, self.object_storage, self.speech
        )


container = Container()
