from __future__ import annotations

from dataclasses import dataclass

from rai_chat.app_config import AppConfig, RuntimeEnv
from rai_chat.logging_config import setup_logging
from rai_chat.provider import create_provider
from rai_chat.relay import RelayChatTransport, ReplyRelay
from rai_chat.renderer import TerminalRenderer
from rai_chat.session import ChatSession
from rai_chat.transport import ChatTransport, HttpChatTransport


@dataclass
class AppRuntime:
    session: ChatSession
    renderer: TerminalRenderer
    transport_description: str
    log_descriptions: list[str]


def build_transport(app: AppConfig, env: RuntimeEnv) -> tuple[ChatTransport, str]:
    if not app.uses_relay:
        transport = HttpChatTransport(
            app.chat_endpoint,
            auth_token=env.chat_api_token,
            timeout_seconds=app.request_timeout_seconds,
            connect_attempts=app.connect_attempts,
        )
        return transport, f"endpoint {app.chat_endpoint}"

    if not env.provider_api_key:
        raise ValueError(
            f"{env.provider_env_var} environment variable is required when ChatEndpoint is not set."
        )
    relay = ReplyRelay(
        create_provider(app.provider_name, env.provider_api_key),
        model=app.model,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        child_names=app.child_names,
    )
    return RelayChatTransport(relay), f"in-process relay ({app.provider_name}, {app.model})"


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    if not app.user_email:
        raise ValueError("UserEmail must be set in config.json.")
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)
    transport, transport_description = build_transport(app, env)
    renderer = TerminalRenderer()
    session = ChatSession(
        transport=transport,
        user_role=app.user_role,
        user_email=app.user_email,
        child_id=app.child_id,
        history_window=app.history_window,
        idle_timeout_seconds=app.idle_timeout_seconds,
        on_update=renderer,
    )
    return AppRuntime(
        session=session,
        renderer=renderer,
        transport_description=transport_description,
        log_descriptions=log_descriptions,
    )
