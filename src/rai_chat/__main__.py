import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from rai_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from rai_chat.bootstrap import AppRuntime, bootstrap_runtime
from rai_chat.commands.router import CommandRouter
from rai_chat.session import ChatSessionError

_USER_PROMPT = "you> "
_LINE_PREFIX = "assistant> "


def _build_router(runtime: AppRuntime) -> CommandRouter:
    session = runtime.session

    async def on_help() -> None:
        print(f"{_LINE_PREFIX}Commands:")
        print(f"{_LINE_PREFIX}  /retry        resend the last message that failed")
        print(f"{_LINE_PREFIX}  /child <id>   ask about a specific student (/child none to clear)")
        print(f"{_LINE_PREFIX}  /help         show this help")
        print(f"{_LINE_PREFIX}  exit | quit   leave")

    async def on_retry() -> None:
        try:
            await session.retry()
        except ChatSessionError as ex:
            print(f"{_LINE_PREFIX}{ex}")

    async def on_child(child_id: str | None) -> None:
        session.child_id = child_id
        if child_id:
            print(f"{_LINE_PREFIX}Now asking about student {child_id}")
        else:
            print(f"{_LINE_PREFIX}Student context cleared")

    def on_unknown(command: str) -> None:
        print(f"{_LINE_PREFIX}Unknown command: {command} (try /help)")

    return CommandRouter(
        on_help=on_help,
        on_retry=on_retry,
        on_child=on_child,
        on_unknown=on_unknown,
    )


async def main() -> None:
    load_dotenv()

    try:
        app = parse_app_config(load_json_config())
        runtime = bootstrap_runtime(app, resolve_runtime_env(app.provider_name))
    except ValueError as ex:
        logger.error(str(ex))
        sys.exit(1)

    router = _build_router(runtime)
    session = runtime.session

    print("rAI chat (type 'exit' to quit, '/help' for commands)")
    print(f"Role: {app.user_role} ({app.user_email})")
    print(f"Transport: {runtime.transport_description}")
    if app.child_id:
        print(f"Student: {app.child_id}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input(_USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                if await router.try_handle(trimmed):
                    continue
                await session.submit(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.renderer.close()
        await session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
