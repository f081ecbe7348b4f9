"""Text generation used to phrase answers from tool output."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Protocol

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mcp_gateway.config.loader import Settings, get_settings

logger = logging.getLogger(__name__)

MEMORY_WINDOW = 20

SYSTEM_PROMPT = """You are an assistant that answers questions using data returned by MCP tool servers.

- Base your answer on the tool output given as context.
- If the context reports an error, explain it briefly and suggest what the user could try.
- If the context does not answer the question, say so instead of guessing.
- Answer in the language of the question."""

# Retry transient API failures only
llm_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(
        (
            openai.APIConnectionError,
            openai.APITimeoutError,
            openai.RateLimitError,
            openai.InternalServerError,
        )
    ),
    reraise=True,
)


class GenerationError(Exception):
    """The language model could not produce an answer."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str, context: str = "", system: str | None = None) -> str: ...

    async def generate_with_memory(
        self, conversation_id: str, question: str, context: str = ""
    ) -> str: ...

    def clear_conversation(self, conversation_id: str) -> None: ...


def _user_content(prompt: str, context: str) -> str:
    if not context:
        return prompt
    return f"Context:\n{context}\n\nQuestion: {prompt}"


class OpenAIGenerator:
    """OpenAI (or Azure OpenAI) chat completions with per-conversation memory."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: AsyncOpenAI | None = None,
        memory_window: int = MEMORY_WINDOW,
    ):
        settings = settings or get_settings()
        if client is not None:
            self.client = client
            self.model = settings.llm_model
        elif settings.use_azure_openai:
            logger.info(f"Using Azure OpenAI: {settings.azure_openai_endpoint}")
            self.client = AsyncAzureOpenAI(
                api_key=settings.openai_api_key,
                api_version=settings.azure_openai_api_version,
                azure_endpoint=settings.azure_openai_endpoint,
            )
            self.model = settings.azure_openai_deployment
        else:
            logger.info("Using OpenAI direct API")
            self.client = AsyncOpenAI(api_key=settings.openai_api_key)
            self.model = settings.llm_model

        self._memory: dict[str, deque[dict[str, str]]] = defaultdict(
            lambda: deque(maxlen=memory_window)
        )

    @llm_retry
    async def _complete(self, messages: list[dict[str, str]]) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            temperature=0.2,
        )
        return (response.choices[0].message.content or "").strip()

    async def generate(self, prompt: str, context: str = "", system: str | None = None) -> str:
        messages = [
            {"role": "system", "content": system or SYSTEM_PROMPT},
            {"role": "user", "content": _user_content(prompt, context)},
        ]
        try:
            return await self._complete(messages)
        except openai.OpenAIError as e:
            logger.error(f"LLM generation failed: {e}")
            raise GenerationError(str(e)) from e

    async def generate_with_memory(
        self, conversation_id: str, question: str, context: str = ""
    ) -> str:
        """Answer with the last few exchanges of the conversation as history."""
        history = self._memory[conversation_id]
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            *history,
            {"role": "user", "content": _user_content(question, context)},
        ]
        try:
            answer = await self._complete(messages)
        except openai.OpenAIError as e:
            logger.error(f"LLM generation failed for conversation {conversation_id}: {e}")
            raise GenerationError(str(e)) from e

        history.append({"role": "user", "content": question})
        history.append({"role": "assistant", "content": answer})
        return answer

    def clear_conversation(self, conversation_id: str) -> None:
        self._memory.pop(conversation_id, None)


class ContextEchoGenerator:
    """Stand-in used when no LLM is configured: answers with the tool output."""

    async def generate(self, prompt: str, context: str = "", system: str | None = None) -> str:
        if context.strip():
            return context
        return f"No information was produced for: {prompt}"

    async def generate_with_memory(
        self, conversation_id: str, question: str, context: str = ""
    ) -> str:
        return await self.generate(question, context)

    def clear_conversation(self, conversation_id: str) -> None:
        pass


def build_generator(settings: Settings | None = None) -> TextGenerator:
    settings = settings or get_settings()
    if settings.llm_enabled:
        return OpenAIGenerator(settings)
    logger.info("No OpenAI API key configured, answering with raw tool output")
    return ContextEchoGenerator()
