"""
Generation service collaborator (Groq chat completions).

`complete` returns the full text; `stream` yields StreamFragment objects and
always ends with a fragment where done=True. Provider and transport failures
surface as GenerationProviderError; the caller decides about refunds.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Protocol

import groq

from folio.core.config import settings
from folio.core.errors import GenerationProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamFragment:
    content: str
    done: bool = False


class GenerationClient(Protocol):
    def complete(self, prompt: str, context: Optional[str] = None) -> str: ...

    def stream(self, prompt: str, context: Optional[str] = None) -> Iterator[StreamFragment]: ...


def _messages(prompt: str, context: Optional[str]) -> List[Dict[str, str]]:
    messages = []
    if context:
        messages.append({"role": "system", "content": context})
    messages.append({"role": "user", "content": prompt})
    return messages


class GroqGenerationClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[groq.Groq] = None,
    ):
        self.api_key = api_key or settings.GROQ_API_KEY
        self.model = model or settings.GENERATION_MODEL
        self.timeout = timeout or settings.GENERATION_TIMEOUT_SECONDS
        self.temperature = settings.GENERATION_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.GENERATION_MAX_TOKENS
        self._client = client

    @property
    def client(self) -> groq.Groq:
        if self._client is None:
            if not self.api_key:
                raise GenerationProviderError("AI service not configured")
            self._client = groq.Groq(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, prompt: str, context: Optional[str] = None) -> str:
        logger.info(f"[generation] complete model={self.model} prompt_len={len(prompt)}")
        try:
            response = self.client.chat.completions.create(
                messages=_messages(prompt, context),
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except groq.APIError as e:
            logger.error(f"[generation] provider error: {type(e).__name__}: {e}")
            raise GenerationProviderError(f"Generation provider failed: {type(e).__name__}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise GenerationProviderError("Generation provider returned no content")
        return text

    def stream(self, prompt: str, context: Optional[str] = None) -> Iterator[StreamFragment]:
        logger.info(f"[generation] stream model={self.model} prompt_len={len(prompt)}")
        try:
            stream = self.client.chat.completions.create(
                messages=_messages(prompt, context),
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
        except groq.APIError as e:
            logger.error(f"[generation] provider error opening stream: {type(e).__name__}: {e}")
            raise GenerationProviderError(f"Generation provider failed: {type(e).__name__}") from e

        try:
            for chunk in stream:
                if not chunk.choices or not chunk.choices[0].delta.content:
                    continue
                yield StreamFragment(chunk.choices[0].delta.content)
        except groq.APIError as e:
            logger.error(f"[generation] provider error mid-stream: {type(e).__name__}: {e}")
            raise GenerationProviderError(f"Generation stream failed: {type(e).__name__}") from e
        finally:
            close = getattr(stream, "close", None)
            if close:
                close()

        yield StreamFragment("", done=True)
