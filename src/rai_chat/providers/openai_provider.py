from collections.abc import AsyncIterator

import openai
from loguru import logger
from tenacity import retry

from rai_chat.providers.common import to_plain_messages
from rai_chat.retrying import default_retry_kwargs

_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)


def _to_openai_messages(system_prompt: str, messages: list[dict]) -> list[dict]:
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    out.extend(to_plain_messages(messages))
    return out


class OpenAIProvider:
    def __init__(self, api_key: str):
        self._client = openai.AsyncOpenAI(api_key=api_key)

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _create_stream(self, **kwargs):
        return await self._client.chat.completions.create(stream=True, **kwargs)

    async def stream_text(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
    ) -> AsyncIterator[str]:
        """Stream a reply from OpenAI, yielding text deltas in real time."""
        oai_messages = _to_openai_messages(system_prompt, messages)
        logger.debug(f"API request: model={model}, max_tokens={max_tokens}, messages={len(oai_messages)}")
        stream = await self._create_stream(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
        )

        finish_reason: str | None = None
        text_len = 0
        async for chunk in stream:
            choice = chunk.choices[0] if chunk.choices else None
            if choice is None:
                continue
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            delta = choice.delta
            if delta is None or not delta.content:
                continue
            text_len += len(delta.content)
            yield delta.content

        logger.debug(f"API response: finish_reason={finish_reason}, text_len={text_len}")

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
    ) -> str:
        oai_messages = _to_openai_messages(system_prompt, messages)
        logger.debug(f"API request (non-streaming): model={model}, messages={len(oai_messages)}")
        response = await self._client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
        )
        text = response.choices[0].message.content or ""
        logger.debug(f"API response: len={len(text)}")
        return text

    async def aclose(self) -> None:
        await self._client.close()
