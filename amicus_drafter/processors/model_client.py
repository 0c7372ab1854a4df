"""
Model Client

Thin wrapper over the Anthropic Messages API used by every wave. It resolves
model aliases, streams long generations, and maps SDK failures onto a small
error taxonomy so the pipeline can tell retryable failures from fatal ones.
"""

import logging
from typing import Iterator, Optional

import anthropic
from anthropic import Anthropic

from amicus_drafter import config

logger = logging.getLogger(__name__)

MODELS = {
    'sonnet': 'claude-sonnet-4-20250514',
    'opus': 'claude-opus-4-20250514',
    'haiku': 'claude-3-5-haiku-20241022',
}


class ModelError(Exception):
    """A failed call to the generative-text service."""

    retryable = False

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class ModelAuthError(ModelError):
    """Missing or rejected credential."""


class ModelRateLimitError(ModelError):
    retryable = True


class ModelConnectionError(ModelError):
    retryable = True


class ModelTimeoutError(ModelError):
    retryable = True


class EmptyResponseError(ModelError):
    """The service answered but produced no text."""


def resolve_model(model: Optional[str]) -> str:
    name = model or config.DEFAULT_MODEL
    return MODELS.get(name, name)


class ModelClient:
    """Generates text with Claude."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client=None,
    ):
        self.api_key = api_key or config.ANTHROPIC_API_KEY
        self.model = resolve_model(model)
        self.timeout = timeout or config.MODEL_TIMEOUT_SECONDS
        self._client = client

    @property
    def client(self) -> Anthropic:
        if self._client is None:
            if not self.api_key:
                raise ModelAuthError('ANTHROPIC_API_KEY is not set')
            # Retries are owned by the wave pipeline, not the SDK
            self._client = Anthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _request(self, prompt, system, model, max_tokens, temperature) -> dict:
        request = {
            'model': resolve_model(model) if model else self.model,
            'max_tokens': max_tokens,
            'temperature': temperature,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        if system:
            request['system'] = system
        return request

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 8000,
        temperature: float = 0.5,
    ) -> str:
        """Return the full generated text for one prompt.

        Uses the streaming endpoint so multi-thousand-word generations are not
        cut off by request timeouts.
        """
        request = self._request(prompt, system, model, max_tokens, temperature)
        logger.debug('Calling %s (max_tokens=%d)', request['model'], max_tokens)

        try:
            with self.client.messages.stream(**request) as stream:
                text = stream.get_final_text()
        except anthropic.APIError as e:
            raise translate_error(e) from e

        if not text or not text.strip():
            raise EmptyResponseError(f"{request['model']} returned an empty response")
        return text

    def stream_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 8000,
        temperature: float = 0.5,
    ) -> Iterator[str]:
        """Yield text chunks as they arrive, for progressive rendering."""
        request = self._request(prompt, system, model, max_tokens, temperature)
        received = False
        try:
            with self.client.messages.stream(**request) as stream:
                for chunk in stream.text_stream:
                    if chunk:
                        received = True
                        yield chunk
        except anthropic.APIError as e:
            raise translate_error(e) from e

        if not received:
            raise EmptyResponseError(f"{request['model']} returned an empty response")


def translate_error(error: Exception) -> ModelError:
    """Map an Anthropic SDK exception onto ModelError."""
    # APITimeoutError subclasses APIConnectionError, so it is checked first
    if isinstance(error, anthropic.APITimeoutError):
        return ModelTimeoutError(f'Model request timed out: {error}')
    if isinstance(error, anthropic.APIConnectionError):
        return ModelConnectionError(f'Could not reach model service: {error}')
    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ModelAuthError(f'Model service rejected credentials: {error}')
    if isinstance(error, anthropic.RateLimitError):
        return ModelRateLimitError(f'Model service rate limit reached: {error}')
    if isinstance(error, anthropic.APIStatusError):
        return ModelError(
            f'Model service error ({error.status_code}): {error}',
            retryable=error.status_code >= 500,
        )
    return ModelError(f'Model service error: {error}')
