"""
Centralized configuration with environment variable overrides.

Feature flags (live vs. simulated calling, the operator test number) and
all pipeline tunables live here. Components receive the relevant
sub-config at construction and never read the environment themselves.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off", ""}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag from an env var ("true"/"false", "1"/"0", ...)."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


def _admin_test_number() -> Optional[str]:
    """First entry of ADMIN_TEST_PHONES, falling back to ADMIN_TEST_NUMBER."""
    phones = [
        p.strip() for p in os.getenv("ADMIN_TEST_PHONES", "").split(",") if p.strip()
    ]
    if phones:
        return phones[0]
    return os.getenv("ADMIN_TEST_NUMBER") or None


@dataclass(frozen=True)
class OrchestratorConfig:
    """Call-mode flags and pipeline tunables for the request lifecycle."""

    live_calls_enabled: bool = _safe_bool("LIVE_CALL_ENABLED", "false")
    test_override_number: Optional[str] = _admin_test_number()
    batch_size: int = _safe_int("ENRICHMENT_BATCH_SIZE", "5")
    batch_delay_ms: int = _safe_int("ENRICHMENT_BATCH_DELAY_MS", "200")
    call_delay_ms: int = _safe_int("CALL_DELAY_MS", "1000")
    default_country_code: str = os.getenv("DEFAULT_COUNTRY_CODE", "1")
    analyze_direct_tasks: bool = _safe_bool("ANALYZE_DIRECT_TASKS", "true")

    @property
    def test_mode(self) -> bool:
        return bool(self.test_override_number)


@dataclass(frozen=True)
class ResearchConfig:
    """Research backend routing and search limits."""

    kestra_enabled: bool = _safe_bool("KESTRA_ENABLED", "false")
    kestra_url: Optional[str] = os.getenv("KESTRA_URL") or None
    kestra_namespace: str = os.getenv("KESTRA_NAMESPACE", "ai_concierge")
    kestra_health_timeout_sec: float = _safe_float("KESTRA_HEALTH_CHECK_TIMEOUT", "3.0")
    kestra_poll_interval_sec: float = _safe_float("KESTRA_POLL_INTERVAL", "2.0")
    kestra_max_polls: int = _safe_int("KESTRA_MAX_POLLS", "90")
    max_results: int = _safe_int("RESEARCH_MAX_RESULTS", "10")
    search_radius_meters: int = _safe_int("SEARCH_RADIUS_METERS", "50000")


@dataclass(frozen=True)
class ModelConfig:
    """Language model settings for analysis and simulated calls."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    api_key: Optional[str] = os.getenv("OPENAI_API_KEY") or None


@dataclass(frozen=True)
class VoiceConfig:
    """Outbound voice-call provider settings."""

    vapi_api_key: Optional[str] = os.getenv("VAPI_API_KEY") or None
    vapi_phone_number_id: Optional[str] = os.getenv("VAPI_PHONE_NUMBER_ID") or None
    vapi_base_url: str = os.getenv("VAPI_BASE_URL", "https://api.vapi.ai")
    poll_interval_sec: float = _safe_float("VAPI_POLL_INTERVAL", "5.0")
    max_poll_attempts: int = _safe_int("VAPI_MAX_POLL_ATTEMPTS", "60")


@dataclass(frozen=True)
class PlacesConfig:
    """Place search / details lookup settings."""

    api_key: Optional[str] = (
        os.getenv("GOOGLE_PLACES_API_KEY") or os.getenv("GOOGLE_MAPS_API_KEY") or None
    )


@dataclass(frozen=True)
class PersistenceConfig:
    """Durable record store selection."""

    backend: str = os.getenv("PERSISTENCE_BACKEND", "memory")
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL") or None
    supabase_key: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None


@dataclass(frozen=True)
class NotificationConfig:
    """User notification delivery once recommendations are ready."""

    enabled: bool = _safe_bool("USER_NOTIFICATIONS_ENABLED", "true")
    twilio_account_sid: Optional[str] = os.getenv("TWILIO_ACCOUNT_SID") or None
    twilio_auth_token: Optional[str] = os.getenv("TWILIO_AUTH_TOKEN") or None
    twilio_phone_number: Optional[str] = os.getenv("TWILIO_PHONE_NUMBER") or None
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    @property
    def configured(self) -> bool:
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number
        )


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    research: ResearchConfig = field(default_factory=ResearchConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    places: PlacesConfig = field(default_factory=PlacesConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    orch = config.orchestrator
    if orch.batch_size < 1:
        raise ValueError(f"ENRICHMENT_BATCH_SIZE must be >= 1, got {orch.batch_size}")
    if orch.batch_delay_ms < 0:
        raise ValueError(
            f"ENRICHMENT_BATCH_DELAY_MS must be >= 0, got {orch.batch_delay_ms}"
        )
    if orch.call_delay_ms < 0:
        raise ValueError(f"CALL_DELAY_MS must be >= 0, got {orch.call_delay_ms}")
    if not orch.default_country_code.isdigit():
        raise ValueError(
            f"DEFAULT_COUNTRY_CODE must be digits only, got {orch.default_country_code!r}"
        )

    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )

    research = config.research
    if research.kestra_health_timeout_sec <= 0:
        raise ValueError(
            "KESTRA_HEALTH_CHECK_TIMEOUT must be > 0, "
            f"got {research.kestra_health_timeout_sec}"
        )
    if research.max_results < 1:
        raise ValueError(f"RESEARCH_MAX_RESULTS must be >= 1, got {research.max_results}")
    if research.search_radius_meters < 1:
        raise ValueError(
            f"SEARCH_RADIUS_METERS must be >= 1, got {research.search_radius_meters}"
        )

    if config.voice.max_poll_attempts < 1:
        raise ValueError(
            f"VAPI_MAX_POLL_ATTEMPTS must be >= 1, got {config.voice.max_poll_attempts}"
        )

    if not config.notifications.frontend_url.startswith(("http://", "https://")):
        raise ValueError(
            f"FRONTEND_URL must be an http(s) URL, got {config.notifications.frontend_url!r}"
        )

    if config.persistence.backend not in {"memory", "supabase"}:
        raise ValueError(
            f"PERSISTENCE_BACKEND must be 'memory' or 'supabase', "
            f"got {config.persistence.backend!r}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info(
        "Configuration loaded (live calls: %s, test mode: %s)",
        config.orchestrator.live_calls_enabled,
        config.orchestrator.test_mode,
    )
    return config


# Process default; components take their sub-config explicitly.
settings = load_config()
