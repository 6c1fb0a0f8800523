"""
Client for the inference endpoint (Groq, through its OpenAI-compatible API).

One prompt in, one text reply out. Transient failures (timeout, connection,
5xx) are retried up to AI_MAX_ATTEMPTS; everything else surfaces at once as
AiServiceError carrying the upstream status code.
"""

import asyncio

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATUS_MESSAGES = {
    400: "The AI provider rejected the request",
    401: "AI API key is invalid",
    403: "AI API key is not allowed to use this model",
    404: "AI model not found",
    429: "AI rate limit reached, try again shortly",
}


class AiServiceError(Exception):
    """The model could not be reached or refused the call."""

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429

    def public_message(self) -> str:
        if self.status_code in STATUS_MESSAGES:
            return STATUS_MESSAGES[self.status_code]
        return "AI service unavailable"


class LlmClient:
    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None):
        self._client = client
        self.model = model or settings.AI_MODEL

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.AI_API_KEY:
                raise AiServiceError("AI_API_KEY not configured", recoverable=False)
            self._client = AsyncOpenAI(
                api_key=settings.AI_API_KEY,
                base_url=settings.AI_BASE_URL,
                timeout=settings.AI_TIMEOUT_SECONDS,
                max_retries=0,
            )
            logger.info("AI client initialized", base_url=settings.AI_BASE_URL, model=self.model)
        return self._client

    async def complete(self, prompt: str) -> str:
        """Send one user prompt; returns the reply text."""
        attempts = max(1, settings.AI_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=settings.AI_TEMPERATURE,
                )
            except (openai.APITimeoutError, openai.APIConnectionError, openai.InternalServerError) as e:
                if attempt >= attempts:
                    raise AiServiceError(f"AI request failed: {e}", status_code=503) from e
                backoff = min(2**attempt, 10)
                logger.warning("AI request failed, retrying", attempt=attempt, backoff=backoff, error=str(e))
                await asyncio.sleep(backoff)
                continue
            except openai.APIStatusError as e:
                logger.warning("AI request rejected", status_code=e.status_code, error=str(e))
                raise AiServiceError(
                    f"AI request rejected: {e}",
                    status_code=e.status_code,
                    recoverable=e.status_code == 429,
                ) from e

            content = response.choices[0].message.content if response.choices else None
            if not content or not content.strip():
                raise AiServiceError("Empty reply from AI model", status_code=502)

            logger.debug(
                "AI reply received",
                model=self.model,
                attempt=attempt,
                usage_tokens=response.usage.total_tokens if response.usage else 0,
            )
            return content.strip()

        raise AiServiceError("AI retry loop exhausted", status_code=503)


llm_client = LlmClient()
