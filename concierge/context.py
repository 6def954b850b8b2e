"""
Process-wide context holding configuration and lazily built clients.

Nothing is looked up globally: the context constructs each client on first
use from its sub-config, and ``build_manager`` wires them into a
``RequestLifecycleManager``.
"""

import logging
from typing import Optional

from concierge.calling.dispatcher import CallDispatcher
from concierge.calling.simulator import CallSimulator
from concierge.calling.task_analyzer import TaskAnalyzer
from concierge.config import AppConfig, settings
from concierge.lifecycle.manager import RequestLifecycleManager
from concierge.ports import LanguageModel, PlacesLookup, RecordStore, UserNotifier, VoiceCaller
from concierge.research.direct_client import DirectResearchClient
from concierge.research.enrichment import ProviderEnricher
from concierge.research.kestra_client import KestraResearchClient
from concierge.research.router import WorkflowRouter
from concierge.tools.llm import OpenAIJsonModel
from concierge.tools.notifier import TwilioNotifier
from concierge.tools.persistence import InMemoryStore, SupabaseStore
from concierge.tools.places import GooglePlacesClient
from concierge.tools.voice import VapiClient

logger = logging.getLogger(__name__)


class AppContext:
    """Owns one instance of each external client for the life of the process."""

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self.config = config or settings
        self._store: Optional[RecordStore] = None
        self._places: Optional[PlacesLookup] = None
        self._voice: Optional[VoiceCaller] = None
        self._model: Optional[LanguageModel] = None
        self._kestra: Optional[KestraResearchClient] = None
        self._notifier: Optional[UserNotifier] = None

    @property
    def store(self) -> RecordStore:
        if self._store is None:
            persistence = self.config.persistence
            if persistence.backend == "supabase":
                if not persistence.supabase_url or not persistence.supabase_key:
                    raise ValueError(
                        "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required "
                        "when PERSISTENCE_BACKEND=supabase"
                    )
                self._store = SupabaseStore(persistence.supabase_url, persistence.supabase_key)
            else:
                self._store = InMemoryStore(unique_keys={"providers": [("call_id",)]})
            logger.info("Record store: %s", persistence.backend)
        return self._store

    @property
    def places(self) -> PlacesLookup:
        if self._places is None:
            self._places = GooglePlacesClient(self.config.places)
        return self._places

    @property
    def model(self) -> LanguageModel:
        if self._model is None:
            self._model = OpenAIJsonModel(self.config.model)
        return self._model

    @property
    def voice(self) -> VoiceCaller:
        if self._voice is None:
            self._voice = VapiClient(self.config.voice, self.config.model)
        return self._voice

    @property
    def kestra(self) -> Optional[KestraResearchClient]:
        research = self.config.research
        if self._kestra is None and research.kestra_enabled and research.kestra_url:
            self._kestra = KestraResearchClient(research)
        return self._kestra

    @property
    def notifier(self) -> Optional[UserNotifier]:
        notifications = self.config.notifications
        if self._notifier is None and notifications.enabled:
            if notifications.configured:
                self._notifier = TwilioNotifier(notifications)
            else:
                logger.info("Twilio not configured; user notifications disabled")
        return self._notifier

    def build_router(self) -> WorkflowRouter:
        orchestrator = self.config.orchestrator
        return WorkflowRouter(
            self.config.research,
            direct=DirectResearchClient(self.places, self.config.research),
            kestra=self.kestra,
            enricher=ProviderEnricher(self.places, orchestrator),
            country_code=orchestrator.default_country_code,
        )

    def build_dispatcher(self) -> CallDispatcher:
        orchestrator = self.config.orchestrator
        if orchestrator.live_calls_enabled:
            return CallDispatcher(
                orchestrator,
                live_caller=self.voice,
                analyzer=TaskAnalyzer(self.model) if orchestrator.analyze_direct_tasks else None,
            )
        return CallDispatcher(orchestrator, simulator=CallSimulator(self.model))

    def build_manager(self) -> RequestLifecycleManager:
        return RequestLifecycleManager(
            self.store,
            self.config.orchestrator,
            dispatcher=self.build_dispatcher(),
            router=self.build_router(),
            max_research_results=self.config.research.max_results,
            notifier=self.notifier,
            frontend_url=self.config.notifications.frontend_url,
        )

    async def aclose(self) -> None:
        for client in (self._voice, self._kestra):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
