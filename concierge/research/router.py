"""
Routes provider research to the workflow engine or the direct backend.

The workflow engine is used only when it is enabled, configured and
reports healthy. Whatever happens inside a backend, callers always get a
``ResearchResult``; backend exceptions become ``status=error`` results
with ``method`` naming the path that was attempted.
"""

import logging
from typing import Optional

from concierge.config import ResearchConfig
from concierge.ports import ResearchBackend
from concierge.research.enrichment import ProviderEnricher
from concierge.schemas.research_schema import (
    ResearchMethod,
    ResearchRequest,
    ResearchResult,
    ResearchStatus,
    SystemStatus,
)
from concierge.utils import DEFAULT_COUNTRY_CODE, check_phone

logger = logging.getLogger(__name__)


def _error_result(method: ResearchMethod, exc: BaseException) -> ResearchResult:
    return ResearchResult(
        status=ResearchStatus.ERROR,
        method=method,
        error=str(exc) or "Research failed",
    )


class WorkflowRouter:
    """
    One research interface over two backends.

    Args:
        config: Research routing settings.
        direct: The always-available direct backend.
        kestra: The workflow-engine backend, when configured.
        enricher: Applied to direct results, which carry place ids.
        country_code: Default country code for phone normalization.
    """

    def __init__(
        self,
        config: ResearchConfig,
        direct: ResearchBackend,
        kestra: Optional[ResearchBackend] = None,
        enricher: Optional[ProviderEnricher] = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> None:
        self._config = config
        self._direct = direct
        self._kestra = kestra
        self._enricher = enricher
        self._country_code = country_code

    async def _kestra_healthy(self) -> bool:
        if self._kestra is None:
            return False
        try:
            return await self._kestra.health_check()
        except Exception as exc:
            logger.warning("Kestra health check raised: %s", exc)
            return False

    async def should_use_kestra(self) -> bool:
        if not self._config.kestra_enabled:
            logger.debug("Kestra disabled via KESTRA_ENABLED")
            return False
        if not self._config.kestra_url or self._kestra is None:
            logger.debug("Kestra URL not configured")
            return False
        return await self._kestra_healthy()

    async def search_providers(self, request: ResearchRequest) -> ResearchResult:
        """Run research on the best available backend and post-process the result."""
        use_kestra = await self.should_use_kestra()
        logger.info(
            "Researching %r near %r via %s",
            request.service, request.location, "kestra" if use_kestra else "direct",
        )

        if use_kestra:
            try:
                result = await self._kestra.research(request)
            except Exception as exc:
                # No fallback once the engine was chosen.
                logger.error("Kestra research failed, not falling back: %s", exc)
                return _error_result(ResearchMethod.KESTRA, exc)
        else:
            try:
                result = await self._direct.research(request)
            except Exception as exc:
                logger.error("Direct research failed, attempting Kestra fallback: %s", exc)
                result = await self._fallback_to_kestra(request, exc)
                if result.status == ResearchStatus.ERROR:
                    return result

        if result.status != ResearchStatus.ERROR:
            if result.method != ResearchMethod.KESTRA and result.providers:
                result = await self._enrich(result, request)
            result = self._normalize_phones(result)
        return result

    async def _fallback_to_kestra(
        self, request: ResearchRequest, original: Exception
    ) -> ResearchResult:
        if not await self._kestra_healthy():
            return _error_result(ResearchMethod.DIRECT, original)
        try:
            return await self._kestra.research(request)
        except Exception as exc:
            logger.error("Fallback research also failed: %s", exc)
            return _error_result(ResearchMethod.DIRECT, original)

    async def _enrich(self, result: ResearchResult, request: ResearchRequest) -> ResearchResult:
        if self._enricher is None:
            return result
        enriched = await self._enricher.enrich(result.providers, request.coordinates)
        stats = enriched.stats
        reasoning = (
            f"{result.reasoning or ''} | Enriched: {stats.enriched_count}, "
            f"failed: {stats.failed_count}"
        ).lstrip(" |")
        return result.model_copy(update={
            "providers": enriched.providers,
            "filtered_count": len(enriched.providers),
            "reasoning": reasoning,
        })

    def _normalize_phones(self, result: ResearchResult) -> ResearchResult:
        providers = []
        for provider in result.providers:
            check = check_phone(provider.phone, self._country_code)
            if check.ok and check.normalized != provider.phone:
                provider = provider.model_copy(update={"phone": check.normalized})
            providers.append(provider)
        return result.model_copy(update={"providers": providers})

    async def system_status(self) -> SystemStatus:
        """Which research path a request made now would take."""
        healthy = await self._kestra_healthy() if self._config.kestra_enabled else False
        use_kestra = bool(self._config.kestra_enabled and self._config.kestra_url and healthy)
        return SystemStatus(
            kestra_enabled=self._config.kestra_enabled,
            kestra_url=self._config.kestra_url,
            kestra_healthy=healthy,
            active_method=ResearchMethod.KESTRA if use_kestra else ResearchMethod.DIRECT,
        )
