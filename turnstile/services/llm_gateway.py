from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Optional

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from turnstile.core.errors import ProviderStreamError

CompletionHook = Callable[[str], Awaitable[None]]


class LLMGateway:
    """Streams chat completions from an OpenAI-compatible endpoint."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url

    @property
    def base_url(self) -> str:
        return self._base_url

    def _build_client(self, api_key: str) -> AsyncOpenAI:
        if not api_key:
            raise ProviderStreamError("Provider credential is missing")
        return AsyncOpenAI(api_key=api_key, base_url=self._base_url)

    async def stream_chat_completion(
        self,
        *,
        api_key: str,
        model: str,
        messages: list[dict[str, str]],
        on_complete: Optional[CompletionHook] = None,
    ) -> AsyncGenerator[str, None]:
        """Yield text deltas as they arrive.

        ``on_complete`` is awaited once with the whole text when the provider
        finishes normally. It is not called when the stream fails or is closed
        early, and whatever it raises propagates to the consumer.
        """
        logger.debug('llm_gateway.request', model=model, messages=len(messages), base_url=self._base_url)
        client = self._build_client(api_key)
        chunks: list[str] = []
        try:
            try:
                stream = await client.chat.completions.create(
                    model=model,
                    messages=messages,
                    stream=True,
                )
            except OpenAIError as exc:
                raise ProviderStreamError(str(exc)) from exc
            try:
                async for event in stream:
                    if not event.choices:
                        continue
                    delta = event.choices[0].delta.content
                    if delta:
                        chunks.append(delta)
                        yield delta
            except OpenAIError as exc:
                raise ProviderStreamError(str(exc)) from exc
            finally:
                await stream.close()
        finally:
            await client.close()
        if on_complete is not None:
            await on_complete(''.join(chunks))
