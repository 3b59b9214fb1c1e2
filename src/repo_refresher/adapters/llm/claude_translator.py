"""Claude API client for translating repository texts."""

import asyncio
import logging

import httpx

from repo_refresher.config import Settings
from repo_refresher.core import Translator

logger = logging.getLogger(__name__)


class ClaudeTranslator(Translator):
    """Translator backed by the Claude messages API."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.api_key = settings.anthropic_api_key
        self.model = settings.claude.model
        self.max_tokens = settings.claude.max_tokens
        self.temperature = settings.claude.temperature
        self.base_url = "https://api.anthropic.com/v1"
        self.max_retries = settings.claude.max_retries
        self.initial_retry_delay = settings.claude.initial_retry_delay
        self.request_delay = settings.claude.request_delay
        self.language = settings.translation.target_language
        self.max_document_chars = settings.translation.max_document_chars
        self._last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def translate_short(self, text: str) -> str:
        """Translate a one-line project description."""
        return await self._translate(self.settings.translation.description, text)

    async def translate_long(self, text: str) -> str:
        """Translate a README, truncated to ``max_document_chars``."""
        if len(text) > self.max_document_chars:
            logger.debug("truncating document from %d to %d chars", len(text), self.max_document_chars)
            text = text[: self.max_document_chars]
        return await self._translate(self.settings.translation.readme, text)

    async def translate_release_note(self, text: str) -> str:
        return await self._translate(self.settings.translation.release_note, text)

    async def _translate(self, prompts: dict, text: str) -> str:
        system_prompt = prompts.get("system", "").format(language=self.language)
        prompt = prompts.get("user", "{text}").format(text=text, language=self.language)

        translated = (await self._call_api(prompt=prompt, system=system_prompt)).strip()
        if not translated:
            raise ValueError("Claude returned an empty translation")
        return translated

    async def _wait_for_slot(self) -> None:
        """Keep a minimum delay between requests, also across concurrent callers."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            time_since_last_request = loop.time() - self._last_request_time
            if time_since_last_request < self.request_delay:
                await asyncio.sleep(self.request_delay - time_since_last_request)
            self._last_request_time = loop.time()

    async def _call_api(self, prompt: str, system: str) -> str:
        """Call Claude API with retry logic and rate limiting."""
        last_exception = None

        for attempt in range(self.max_retries):
            await self._wait_for_slot()
            try:
                async with httpx.AsyncClient(timeout=60.0) as client:
                    response = await client.post(
                        f"{self.base_url}/messages",
                        headers={
                            "x-api-key": self.api_key,
                            "anthropic-version": "2023-06-01",
                            "content-type": "application/json",
                        },
                        json={
                            "model": self.model,
                            "max_tokens": self.max_tokens,
                            "temperature": self.temperature,
                            "system": system,
                            "messages": [
                                {"role": "user", "content": prompt}
                            ],
                        },
                    )

                    if response.status_code == 200:
                        data = response.json()
                        return data["content"][0]["text"]

                    # Rate limit - retry with backoff
                    if response.status_code == 429:
                        retry_after = self._get_retry_delay(response, attempt)
                        logger.warning(
                            "rate limit hit, retrying after %.1fs (attempt %d/%d)",
                            retry_after, attempt + 1, self.max_retries,
                        )
                        await asyncio.sleep(retry_after)
                        continue

                    # Server errors - retry with backoff
                    if response.status_code >= 500:
                        retry_delay = self.initial_retry_delay * (2 ** attempt)
                        logger.warning("server error %d, retrying after %.1fs", response.status_code, retry_delay)
                        await asyncio.sleep(retry_delay)
                        continue

                    response.raise_for_status()

            except httpx.HTTPStatusError:
                # 4xx other than 429 will not succeed on retry
                raise
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries - 1:
                    retry_delay = self.initial_retry_delay * (2 ** attempt)
                    logger.warning("network error %s, retrying after %.1fs", type(e).__name__, retry_delay)
                    await asyncio.sleep(retry_delay)
                    continue
                raise

        if last_exception:
            raise last_exception
        raise RuntimeError("Failed to call API after all retries")

    def _get_retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Calculate retry delay from response headers or use exponential backoff."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

        return self.initial_retry_delay * (2 ** attempt)
