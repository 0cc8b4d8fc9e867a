# app/services/openai_service.py
"""
OpenAI Service for text completions.
Thin async wrapper around chat completions with retry on transient failures.
"""

import asyncio

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class OpenAIServiceError(Exception):
    """Raised when a completion cannot be obtained."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class OpenAIService:
    """
    Service for OpenAI chat completions that must come back as a JSON object.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        max_retries: int | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model or settings.OPENAI_MODEL
        self.max_tokens = max_tokens or settings.OPENAI_MAX_TOKENS
        self.max_retries = max_retries or settings.OPENAI_MAX_RETRIES
        self.client = client or self._initialize_client(api_key or settings.OPENAI_API_KEY)

    def _initialize_client(self, api_key: str | None) -> AsyncOpenAI:
        """Initialize OpenAI async client with configuration."""
        if not api_key:
            raise OpenAIServiceError("OPENAI_API_KEY not configured in settings", recoverable=False)

        client = AsyncOpenAI(api_key=api_key, timeout=settings.OPENAI_TIMEOUT_SECONDS)
        logger.info(
            "OpenAI client initialized",
            model=self.model,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
        return client

    async def complete_json(self, system_message: str, user_message: str) -> str:
        """Request one completion in JSON mode and return the raw text."""

        last_error = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    "Calling OpenAI API",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    model=self.model,
                )

                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_message},
                        {"role": "user", "content": user_message},
                    ],
                    max_tokens=self.max_tokens,
                    temperature=settings.OPENAI_TEMPERATURE,
                    response_format={"type": "json_object"},
                )

                if not response.choices or not response.choices[0].message.content:
                    raise OpenAIServiceError("Empty response from OpenAI API")

                result = response.choices[0].message.content.strip()

                logger.info(
                    "OpenAI API call successful",
                    attempt=attempt + 1,
                    response_length=len(result),
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )

                return result

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)

                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    attempt=attempt + 1,
                    wait_time=wait_time,
                    error=str(e),
                )

                if attempt < self.max_retries - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning("OpenAI API timeout, retrying", attempt=attempt + 1, error=str(e))

            except openai.APIError as e:
                last_error = e
                # Don't retry on client errors (4xx)
                status_code = getattr(e, "status_code", None)
                if status_code and 400 <= status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break

                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except OpenAIServiceError as e:
                last_error = e
                logger.warning("OpenAI returned no content, retrying", attempt=attempt + 1)

        logger.error(
            "OpenAI API call failed after all retries",
            max_retries=self.max_retries,
            final_error=str(last_error),
        )

        raise OpenAIServiceError(
            f"OpenAI API failed after {self.max_retries} attempts",
            api_error=str(last_error),
        ) from last_error
