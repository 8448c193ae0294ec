# src/dinarlive/adapters/ai/provider_client.py
"""
Provider Client - AI-backed Exchange Rate Acquisition

This module asks an OpenAI-compatible chat completions endpoint (ideally a
search-enabled model) for the current IQD/USD market rate, the secondary
cross rates and recent IQD history, then hands the free-text reply to the
parsing pipeline. One call to fetch() is exactly one network request; retry
policy lives in the application layer.

Files that USE this module:
- dinarlive.app (creates the client for the engine)
- dinarlive.application.health (test_api for provider health checks)
- tests.test_provider_client (unit tests)

Files that this module USES:
- dinarlive.adapters.ai.parsing (extract and validate the JSON payload)
- dinarlive.config (API key, base URL, model and validation settings)
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import openai
from openai import OpenAI

from dinarlive.adapters.ai.parsing import parse_payload
from dinarlive.config import settings
from dinarlive.domain.errors import FailureReason, TransportFailureError
from dinarlive.domain.models import Citation, FetchResult

log = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a financial data assistant. You look up live market exchange rates "
    "from reliable sources and answer with a single raw JSON object only."
)

PROMPT_TEMPLATE = """Provide the latest currency exchange rates. Use real-time data from reliable financial sources.
1. The 'buy' market rate for 100 US Dollars (USD) in Iraqi Dinar (IQD), specifically from {exchange_rate_url}.
2. Euro (EUR) per 1 US Dollar.
3. Turkish Lira (TRY) per 1 US Dollar.
4. British Pound (GBP) per 1 US Dollar.
5. Iranian Toman (IRT) per 1 US Dollar on the open market.
6. The IQD market rate for 100 USD for each of the last {history_days} days.

Return ONLY a raw JSON object with no other text, explanation, or markdown formatting, in exactly this shape:
{{"current": {{"iqdPer100Usd": 147500, "eurPerUsd": 0.92, "tryPerUsd": 32.5, "gbpPerUsd": 0.79, "irtPerUsd": 59000}},
 "history": [{{"date": "YYYY-MM-DD", "rate": 147300}}]}}
Use 0 for any value you cannot find."""


def classify_error(error: Exception) -> FailureReason:
    """
    Map an OpenAI SDK exception to a FailureReason.

    Authentication, permission, missing model and quota errors are
    configuration problems (API_KEY); connection problems are FETCH.
    """
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError,
                          openai.NotFoundError, openai.RateLimitError)):
        return FailureReason.API_KEY
    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return FailureReason.FETCH
    message = str(error).lower()
    if "api key" in message or "api_key" in message or "quota" in message:
        return FailureReason.API_KEY
    return FailureReason.UNKNOWN


def extract_citations(message: Any) -> list[Citation]:
    """Collect url_citation annotations from a chat completion message."""
    citations: list[Citation] = []
    for annotation in getattr(message, "annotations", None) or []:
        if getattr(annotation, "type", None) != "url_citation":
            continue
        cite = getattr(annotation, "url_citation", None)
        uri = getattr(cite, "url", None)
        title = getattr(cite, "title", None)
        if uri and title:
            citations.append(Citation(uri=uri, title=title))
    return citations


class ProviderClient:
    """
    Client for the AI data provider.

    Wraps the synchronous OpenAI SDK and runs it in the default executor so
    the event loop stays responsive while the request is in flight.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize provider client.

        Args:
            api_key: Optional API key (defaults to settings.openai_api_key)
            base_url: Optional API base URL (defaults to settings.provider_base_url)
            model: Optional model name (defaults to settings.provider_model)
            timeout: Optional request timeout in seconds
            client: Pre-built OpenAI client (used by tests)
        """
        self.api_key = api_key or settings.openai_api_key
        self.base_url = base_url or settings.provider_base_url
        self.model = model or settings.provider_model
        self.timeout = timeout or settings.provider_timeout_seconds
        self.min_iqd_per_100_usd = settings.min_iqd_per_100_usd

        if client is not None:
            self.client: Optional[OpenAI] = client
        elif not self.api_key:
            log.warning("Provider API key not configured - rate fetches will fail until OPENAI_API_KEY is set")
            self.client = None
        else:
            # Retries are owned by the engine's retry controller
            self.client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
            log.info("Provider client initialized with base_url=%s, model=%s", self.base_url, self.model)

    def build_prompt(self) -> str:
        return PROMPT_TEMPLATE.format(
            exchange_rate_url=settings.exchange_rate_url,
            history_days=settings.history_days,
        )

    def _complete(self, prompt: str) -> Any:
        return self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )

    async def fetch(self) -> FetchResult:
        """
        Perform one provider request and parse the reply.

        Returns:
            FetchResult with snapshot, history and citations

        Raises:
            TransportFailureError: the request failed or the client is not configured
            MalformedResponseError: no JSON object could be parsed from the reply
            InvalidPayloadError: the JSON failed field validation
        """
        if self.client is None:
            raise TransportFailureError("Provider API key not configured", reason=FailureReason.API_KEY)

        prompt = self.build_prompt()
        log.info("Requesting exchange rates from provider (model=%s)", self.model)
        loop = asyncio.get_running_loop()
        try:
            completion = await loop.run_in_executor(None, self._complete, prompt)
        except openai.OpenAIError as e:
            reason = classify_error(e)
            log.warning("Provider request failed (%s): %s", reason.value, e)
            raise TransportFailureError(f"Provider request failed: {e}", reason=reason) from e

        try:
            message = completion.choices[0].message
        except (AttributeError, IndexError, TypeError) as e:
            raise TransportFailureError(f"Provider returned no choices: {e}") from e

        text = (message.content or "").strip()
        log.debug("Provider reply (%d chars): %s", len(text), text[:200])
        result = parse_payload(
            text,
            min_iqd_per_100_usd=self.min_iqd_per_100_usd,
            now=datetime.now(timezone.utc),
            citations=extract_citations(message),
        )
        log.info(
            "Provider reply parsed: iqd=%.2f, history=%d points, citations=%d",
            result.snapshot.iqd, len(result.history), len(result.citations),
        )
        return result

    def test_api(self) -> tuple[bool, str]:
        """
        Test the provider with a minimal request.

        This is a synchronous method for health checks.

        Returns:
            Tuple of (success: bool, response: str)
        """
        if self.client is None:
            log.debug("Provider not configured, skipping API test")
            return (False, "API key not configured")

        try:
            log.info("Testing provider API with a health check message")
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "Reply with the single word OK."}],
            )
            response = completion.choices[0].message.content
            if response:
                return (True, response.strip())
            log.warning("Provider health check returned empty response")
            return (False, "Empty response from API")
        except openai.OpenAIError as e:
            log.error("Provider health check failed: %s", e)
            return (False, f"API error ({classify_error(e).value}): {e}")
