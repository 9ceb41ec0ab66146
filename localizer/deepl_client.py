"""DeepL REST API wrapper for machine translation."""

import logging
import time
from typing import Optional

import requests

log = logging.getLogger(__name__)

FREE_API_URL = "https://api-free.deepl.com/v2"
PRO_API_URL = "https://api.deepl.com/v2"

MAX_BATCH_SIZE = 50          # Texts per /translate request
MAX_RETRIES = 3              # Retries on HTTP 429
INITIAL_RETRY_DELAY = 1.0    # Seconds, doubled after every retry

# Target codes that accept the "formality" parameter
FORMALITY_SUPPORTED = frozenset({
    "DE", "FR", "IT", "ES", "NL", "PL", "PT", "PT-BR", "RU", "JA",
})

DEFAULT_LANGUAGE_CODES = {
    "Bulgarian": "BG",
    "Czech": "CS",
    "Danish": "DA",
    "German": "DE",
    "Greek": "EL",
    "English": "EN",
    "Spanish": "ES",
    "Estonian": "ET",
    "Finnish": "FI",
    "French": "FR",
    "Hungarian": "HU",
    "Indonesian": "ID",
    "Italian": "IT",
    "Japanese": "JA",
    "Korean": "KO",
    "Lithuanian": "LT",
    "Latvian": "LV",
    "Norwegian": "NB",
    "Dutch": "NL",
    "Polish": "PL",
    "Portuguese": "PT",
    "Portuguese (Brazil)": "PT-BR",
    "Romanian": "RO",
    "Russian": "RU",
    "Slovak": "SK",
    "Slovenian": "SL",
    "Swedish": "SV",
    "Turkish": "TR",
    "Ukrainian": "UK",
    "Chinese": "ZH",
    "Chinese (Simplified)": "ZH",
    "Chinese (Traditional)": "ZH",
}
KNOWN_CODES = frozenset(DEFAULT_LANGUAGE_CODES.values())


def get_language_code(language: str, custom_mappings: Optional[dict] = None) -> Optional[str]:
    """DeepL target code for a language name, or None if unknown.

    Custom mappings win over the built-in table; ``"Name (Region)"`` falls
    back to the code of ``"Name"``.
    """
    if custom_mappings and language in custom_mappings:
        return custom_mappings[language]
    code = DEFAULT_LANGUAGE_CODES.get(language)
    if code:
        return code
    if "(" in language:
        return DEFAULT_LANGUAGE_CODES.get(language.split("(")[0].strip())
    return None


class DeepLClient:
    """Client for the DeepL translation API (free or pro endpoint)."""

    def __init__(self, api_key: str, pro: bool = False, formality: str = "default",
                 preserve_formatting: bool = True, custom_mappings: Optional[dict] = None,
                 timeout: int = 30):
        self.api_key = api_key
        self.base_url = PRO_API_URL if pro else FREE_API_URL
        self.formality = formality            # "default", "more" or "less"
        self.preserve_formatting = preserve_formatting
        self.custom_mappings = dict(custom_mappings or {})
        self.timeout = timeout
        self._sleep = time.sleep

    @classmethod
    def from_settings(cls, settings, custom_mappings: Optional[dict] = None) -> "DeepLClient":
        return cls(
            settings.deepl_api_key,
            pro=settings.deepl_pro,
            formality=settings.deepl_formality,
            preserve_formatting=settings.deepl_preserve_formatting,
            custom_mappings=custom_mappings,
        )

    @property
    def headers(self) -> dict:
        return {"Authorization": f"DeepL-Auth-Key {self.api_key}"}

    def is_available(self) -> bool:
        """Check that the API key is accepted."""
        if not self.api_key:
            return False
        try:
            r = requests.get(f"{self.base_url}/usage", headers=self.headers, timeout=10)
            return r.status_code == 200
        except (requests.RequestException, ValueError, OSError):
            return False

    def get_usage(self) -> dict:
        """Character usage of the account, e.g. {"character_count": .., "character_limit": ..}."""
        try:
            r = requests.get(f"{self.base_url}/usage", headers=self.headers, timeout=10)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise ConnectionError(f"DeepL API error: {e}") from e

    def language_code(self, language: str) -> str:
        if language in KNOWN_CODES:
            return language
        code = get_language_code(language, self.custom_mappings)
        if not code:
            raise ValueError(
                f"Language '{language}' not found in DeepL mappings. "
                "Add a custom language mapping for it."
            )
        return code

    def translate_batch(self, texts: list[str], target_language: str,
                        context: str = "") -> list[str]:
        """Translate up to MAX_BATCH_SIZE texts into *target_language*.

        Args:
            texts: Source strings, returned translations keep their order.
            target_language: Language name ("German") or DeepL code ("DE").
            context: Extra text DeepL uses for disambiguation only.

        Raises:
            ConnectionError: network failure, HTTP error, or rate limit
                still hit after MAX_RETRIES retries.
            ValueError: unknown language or a malformed response.
        """
        if not texts:
            return []
        if len(texts) > MAX_BATCH_SIZE:
            raise ValueError(f"At most {MAX_BATCH_SIZE} texts per batch, got {len(texts)}")

        code = self.language_code(target_language)
        payload = {
            "text": list(texts),
            "target_lang": code,
            "preserve_formatting": self.preserve_formatting,
        }
        if context:
            payload["context"] = context
        if self.formality in ("more", "less") and code in FORMALITY_SUPPORTED:
            payload["formality"] = self.formality

        delay = INITIAL_RETRY_DELAY
        for attempt in range(MAX_RETRIES + 1):
            try:
                r = requests.post(f"{self.base_url}/translate", json=payload,
                                  headers=self.headers, timeout=self.timeout)
            except requests.RequestException as e:
                raise ConnectionError(f"DeepL API error: {e}") from e

            if r.status_code == 429 and attempt < MAX_RETRIES:
                log.warning("DeepL rate limit hit. Retrying in %.1f seconds... (Attempt %d/%d)",
                            delay, attempt + 1, MAX_RETRIES)
                self._sleep(delay)
                delay *= 2
                continue
            if r.status_code == 429:
                raise ConnectionError("DeepL rate limit exceeded. Wait a few minutes "
                                      "or use DeepL Pro for higher limits.")
            if r.status_code != 200:
                raise ConnectionError(f"DeepL translation failed ({r.status_code}): {r.text[:200]}")
            break

        try:
            translations = [t["text"] for t in r.json()["translations"]]
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed DeepL response: {r.text[:200]}") from e
        if len(translations) != len(texts):
            raise ValueError(f"DeepL returned {len(translations)} translations "
                             f"for {len(texts)} texts")
        return translations
