from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

_USER_ROLES = {"parent", "coach", "admin"}


@dataclass
class RuntimeEnv:
    chat_api_token: str | None
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    chat_endpoint: str
    user_role: str
    user_email: str
    child_id: str | None
    history_window: int
    request_timeout_seconds: float
    idle_timeout_seconds: float
    connect_attempts: int
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    child_names: dict[str, str]
    log_level: str
    log_consumers: list | None

    @property
    def uses_relay(self) -> bool:
        return not self.chat_endpoint


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_app_config(config: dict) -> AppConfig:
    user_role = str(config.get("UserRole", "coach")).strip().lower()
    if user_role not in _USER_ROLES:
        raise ValueError(f"Unknown UserRole: {user_role!r}. Supported: 'parent', 'coach', 'admin'")

    return AppConfig(
        chat_endpoint=str(config.get("ChatEndpoint", "")).strip(),
        user_role=user_role,
        user_email=str(config.get("UserEmail", "")).strip(),
        child_id=_optional_str(config.get("ChildId")),
        history_window=int(config.get("HistoryWindow", 6)),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30)),
        idle_timeout_seconds=float(config.get("IdleTimeoutSeconds", 60)),
        connect_attempts=int(config.get("ConnectAttempts", 3)),
        provider_name=str(config.get("Provider", "anthropic")).strip().lower(),
        model=config.get("Model", "claude-sonnet-4-5-20250929"),
        max_tokens=int(config.get("MaxTokens", 1024)),
        temperature=float(config.get("Temperature", 0.2)),
        child_names={str(k): str(v) for k, v in (config.get("ChildNames") or {}).items()},
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    if provider_name == "openai":
        provider_api_key = os.environ.get("OPENAI_API_KEY", "")
        provider_env_var = "OPENAI_API_KEY"
    else:
        provider_api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        provider_env_var = "ANTHROPIC_API_KEY"

    return RuntimeEnv(
        chat_api_token=os.environ.get("CHAT_API_TOKEN") or None,
        provider_api_key=provider_api_key,
        provider_env_var=provider_env_var,
    )
