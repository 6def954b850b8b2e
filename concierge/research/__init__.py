from concierge.research.direct_client import DirectResearchClient
from concierge.research.enrichment import EnrichmentResult, ProviderEnricher, haversine_miles
from concierge.research.kestra_client import KestraResearchClient
from concierge.research.router import WorkflowRouter

__all__ = [
    "ProviderEnricher", "EnrichmentResult", "haversine_miles",
    "DirectResearchClient", "KestraResearchClient", "WorkflowRouter",
]
