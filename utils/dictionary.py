from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx

from models.word import LookupResult
from utils.errors import NetworkError, NotFoundError
from utils.log import get_logger
from utils.normalize import sanitize_html
from utils.retry import DEFAULT_RETRY_CONFIG, RetryConfig, with_retry

DEFAULT_ENDPOINT = "https://api.dictionaryapi.dev/api/v2/entries/en"


def parse_dictionary_response(data: Any) -> LookupResult:
    """Definitions, phonetic and audio URL from a dictionaryapi.dev payload."""
    if not isinstance(data, list) or not data:
        return LookupResult()
    entry = data[0] if isinstance(data[0], dict) else {}

    definitions = []
    for meaning in entry.get("meanings") or []:
        for item in meaning.get("definitions") or []:
            text = sanitize_html(item.get("definition") or "")
            if text:
                definitions.append(text)

    phonetics = entry.get("phonetics") or []
    phonetic = entry.get("phonetic")
    if not phonetic and phonetics:
        phonetic = phonetics[0].get("text")
    audio_url = next((ph["audio"] for ph in phonetics if ph.get("audio")), None)

    return LookupResult(definitions=definitions, phonetic=phonetic or None, audio_url=audio_url)


class DictionaryClient:
    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry: RetryConfig = DEFAULT_RETRY_CONFIG,
        logger=None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.retry = retry
        self.logger = logger or get_logger("dictionary")

    async def _fetch(self, word: str) -> LookupResult:
        url = f"{self.endpoint}/{quote(word.strip())}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise NetworkError(f"Dictionary request failed: {exc}", url=url) from exc
        if response.status_code == 404:
            raise NotFoundError(f"No dictionary entry for: {word}", context={"word": word})
        if response.status_code >= 400:
            raise NetworkError(
                f"Dictionary API returned {response.status_code}",
                status_code=response.status_code,
                url=url,
            )
        return parse_dictionary_response(response.json())

    async def lookup(self, word: str) -> LookupResult:
        """Look `word` up, retrying transient failures. NotFoundError is not retried."""
        result = await with_retry(lambda: self._fetch(word), self.retry, log=self.logger)
        self.logger.debug("Dictionary lookup", word=word, definitions=len(result.definitions))
        return result
