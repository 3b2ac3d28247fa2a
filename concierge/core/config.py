"""
Configuration module for Concierge.
Centralizes all settings with environment variable overrides.
"""
import os
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    """Central configuration for Concierge"""

    # Logging
    LOG_LEVEL: str = os.environ.get("CONCIERGE_LOG_LEVEL", "INFO")

    # Quiet Mode - hides per-stage internals (detector matches, filter narrowing, sweeps)
    QUIET_MODE: bool = _env_bool("CONCIERGE_QUIET_MODE", "false")

    # LLM completion service (Ollama)
    OLLAMA_BASE_URL: str = os.environ.get("CONCIERGE_OLLAMA_URL", "http://127.0.0.1:11434")
    OLLAMA_MODEL: str = os.environ.get("CONCIERGE_OLLAMA_MODEL", "llama3.1:latest")
    LLM_TIMEOUT: int = int(os.environ.get("CONCIERGE_LLM_TIMEOUT", "30"))
    OLLAMA_TEMPERATURE: float = float(os.environ.get("CONCIERGE_OLLAMA_TEMPERATURE", "0.2"))
    OLLAMA_NUM_PREDICT: int = int(os.environ.get("CONCIERGE_OLLAMA_NUM_PREDICT", "256"))

    # LLM fallback router (only runs when the semantic router abstains)
    LLM_ROUTER_ENABLED: bool = _env_bool("CONCIERGE_LLM_ROUTER_ENABLED", "true")
    # Hard upper bound for one classification call, seconds
    LLM_ROUTER_TIMEOUT_SEC: float = float(os.environ.get("CONCIERGE_LLM_ROUTER_TIMEOUT_SEC", "4.0"))
    LLM_ROUTER_RECENT_TURNS: int = int(os.environ.get("CONCIERGE_LLM_ROUTER_RECENT_TURNS", "3"))

    # Sequence planner
    LLM_PLANNER_ENABLED: bool = _env_bool("CONCIERGE_LLM_PLANNER_ENABLED", "true")
    LLM_PLANNER_TIMEOUT_SEC: float = float(os.environ.get("CONCIERGE_LLM_PLANNER_TIMEOUT_SEC", "8.0"))
    SEQUENCE_MAX_STEPS: int = max(2, min(12, int(os.environ.get("CONCIERGE_SEQUENCE_MAX_STEPS", "6"))))
    # Texts shorter than this never reach the LLM planner
    SEQUENCE_MIN_CHARS_FOR_LLM: int = int(os.environ.get("CONCIERGE_SEQUENCE_MIN_CHARS_FOR_LLM", "60"))

    # Confirmation state machine TTLs (seconds)
    CONFIRMATION_TTL_SEC: float = float(os.environ.get("CONCIERGE_CONFIRMATION_TTL_SEC", "300"))
    PENDING_PATH_TTL_SEC: float = float(os.environ.get("CONCIERGE_PENDING_PATH_TTL_SEC", "300"))

    # Intent clarification ("did you mean X or Y?") TTL, seconds
    CLARIFICATION_TTL_SEC: float = float(os.environ.get("CONCIERGE_CLARIFICATION_TTL_SEC", "300"))

    # Indexed list context TTL (seconds)
    LIST_CONTEXT_TTL_SEC: float = float(os.environ.get("CONCIERGE_LIST_CONTEXT_TTL_SEC", "1800"))

    # Conversation ring buffer (turns kept per chat)
    SESSION_MEMORY_TURNS: int = int(os.environ.get("CONCIERGE_SESSION_MEMORY_TURNS", "12"))

    # How long a handled mail/file target stays the referent of "it"/"that file"
    RECENT_FOCUS_SEC: float = float(os.environ.get("CONCIERGE_RECENT_FOCUS_SEC", "60"))

    # Routing telemetry dataset (append-only JSONL)
    TELEMETRY_ENABLED: bool = _env_bool("CONCIERGE_TELEMETRY_ENABLED", "true")
    TELEMETRY_PATH: str = os.environ.get("CONCIERGE_TELEMETRY_PATH", "data/intent-router-dataset.jsonl")
    TELEMETRY_TEXT_MAX_CHARS: int = 500

    # Background expiry sweep
    SWEEP_INTERVAL_SEC: float = float(os.environ.get("CONCIERGE_SWEEP_INTERVAL_SEC", "30"))

    # Handler dispatch
    HANDLER_TIMEOUT_SEC: float = float(os.environ.get("CONCIERGE_HANDLER_TIMEOUT_SEC", "20"))

    @classmethod
    def get_route_threshold_override(cls, route_name: str) -> Optional[float]:
        """
        Get a per-route threshold override from the environment.

        CONCIERGE_ROUTE_THRESHOLD_MAIL_CONTACTS overrides "mail-contacts".
        Returns None when unset or not a number.
        """
        key = "CONCIERGE_ROUTE_THRESHOLD_" + route_name.upper().replace("-", "_")
        raw = os.environ.get(key)
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    @classmethod
    def get_ollama_options(cls) -> dict:
        """Generation options sent with every completion request"""
        return {
            "temperature": cls.OLLAMA_TEMPERATURE,
            "num_predict": cls.OLLAMA_NUM_PREDICT,
        }
