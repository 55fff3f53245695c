from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_retry: Callable[[], Awaitable[None]],
        on_child: Callable[[str | None], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_retry = on_retry
        self._on_child = on_child
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        if trimmed == "/help":
            await self._on_help()
            return True
        if trimmed == "/retry":
            await self._on_retry()
            return True
        if trimmed == "/child" or trimmed.startswith("/child "):
            await self._on_child(parse_child_argument(trimmed))
            return True

        self._on_unknown(trimmed)
        return True


def parse_child_argument(command: str) -> str | None:
    """`/child <id>` selects a student, `/child` or `/child none` clears it."""
    _, _, arg = command.strip().partition(" ")
    arg = arg.strip()
    if not arg or arg.lower() == "none":
        return None
    return arg
