import contextlib
from collections.abc import AsyncIterator

import anthropic
from loguru import logger
from tenacity import retry

from rai_chat.providers.common import to_plain_messages
from rai_chat.retrying import default_retry_kwargs

_RETRYABLE = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)


class AnthropicProvider:
    def __init__(self, api_key: str):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _open_stream(self, stack: contextlib.AsyncExitStack, **kwargs):
        return await stack.enter_async_context(self._client.messages.stream(**kwargs))

    async def stream_text(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
    ) -> AsyncIterator[str]:
        """Stream a reply from Anthropic, yielding text deltas in real time."""
        plain = to_plain_messages(messages)
        logger.debug(f"API request: model={model}, max_tokens={max_tokens}, messages={len(plain)}")
        async with contextlib.AsyncExitStack() as stack:
            stream = await self._open_stream(
                stack,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=plain,
            )
            text_len = 0
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    text_len += len(event.delta.text)
                    yield event.delta.text
            logger.debug(f"API response: text_len={text_len}")

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
    ) -> str:
        plain = to_plain_messages(messages)
        logger.debug(f"API request (non-streaming): model={model}, messages={len(plain)}")
        response = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=plain,
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return text

    async def aclose(self) -> None:
        await self._client.close()
