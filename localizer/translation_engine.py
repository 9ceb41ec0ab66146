"""Translation engine: fills missing translations through DeepL."""

import logging
from typing import Callable, Iterable, Optional

import requests

from . import smart_string
from .deepl_client import MAX_BATCH_SIZE, DeepLClient
from .translation_data import TranslationData, split_disambiguation

log = logging.getLogger(__name__)


class TranslationWorker:
    """Translates every key that has no text yet in the target languages.

    Keys are grouped by their translation context (one DeepL context per
    request) and sent in batches.  Languages mapping to the same DeepL
    code share one request.  Smart-string placeholders are swapped for
    tokens before sending and restored afterwards.

    Callbacks (all optional):
        on_entry_done(key, language, translation)
        on_progress(done, total)
        on_error(keys, message)
        on_finished(stats)
    """

    def __init__(self, client: DeepLClient, data: TranslationData, metadata=None,
                 languages: Optional[Iterable[str]] = None, use_context: bool = True,
                 batch_size: int = MAX_BATCH_SIZE):
        self.client = client
        self.data = data
        self.metadata = metadata
        if languages is None:
            languages = [l for l in data.supported_languages if l != data.default_language]
        self.languages = list(languages)
        self.use_context = use_context
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._cancelled = False

        self.on_entry_done: Optional[Callable[[str, str, str], None]] = None
        self.on_progress: Optional[Callable[[int, int], None]] = None
        self.on_error: Optional[Callable[[list, str], None]] = None
        self.on_finished: Optional[Callable[[dict], None]] = None

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def context_for(self, key: str) -> str:
        if not self.use_context or self.metadata is None:
            return ""
        return self.metadata.get_translation_context(key)

    def pending_keys(self, language: str) -> list:
        """Keys without a translation in *language*, in key order."""
        return [k for k in self.data.all_keys
                if k.strip() and not self.data.get_translation(k, language).strip()]

    def language_groups(self) -> dict:
        """{DeepL code: [language, ...]} for the target languages.

        Languages without a known code are reported and left out.
        """
        groups = {}
        for language in self.languages:
            if language == self.data.default_language:
                continue
            try:
                code = self.client.language_code(language)
            except ValueError as e:
                log.error("%s", e)
                if self.on_error:
                    self.on_error([], str(e))
                continue
            groups.setdefault(code, []).append(language)
        return groups

    def run(self) -> dict:
        """Translate everything pending.

        Returns:
            Dict with stats: {"translated": int, "failed": int, "batches": int}
        """
        stats = {"translated": 0, "failed": 0, "batches": 0}
        jobs = []
        for code, languages in self.language_groups().items():
            keys = sorted({k for lang in languages for k in self.pending_keys(lang)},
                          key=self.data.index_of)
            for context, batch in self._batches(keys):
                jobs.append((code, languages, context, batch))

        total = sum(len(batch) for *_, batch in jobs)
        done = 0
        for code, languages, context, batch in jobs:
            if self._cancelled:
                log.info("Translation cancelled after %d batches", stats["batches"])
                break
            try:
                results = self.translate_keys(batch, code, context)
            except (ConnectionError, requests.RequestException, ValueError) as e:
                log.error("Batch of %d keys for %s failed: %s", len(batch), code, e)
                stats["failed"] += len(batch)
                if self.on_error:
                    self.on_error(batch, str(e))
            else:
                for key, translation in zip(batch, results):
                    for language in languages:
                        if self.data.get_translation(key, language).strip():
                            continue
                        self.data.set_translation(key, language, translation)
                        if self.on_entry_done:
                            self.on_entry_done(key, language, translation)
                    stats["translated"] += 1
            stats["batches"] += 1
            done += len(batch)
            if self.on_progress:
                self.on_progress(done, total)

        log.info("DeepL translation done: %d translated, %d failed",
                 stats["translated"], stats["failed"])
        if self.on_finished:
            self.on_finished(stats)
        return stats

    def _batches(self, keys: list):
        """Yield (context, keys) chunks of at most batch_size keys."""
        by_context = {}
        for key in keys:
            by_context.setdefault(self.context_for(key), []).append(key)
        for context, group in by_context.items():
            for i in range(0, len(group), self.batch_size):
                yield context, group[i:i + self.batch_size]

    def translate_keys(self, keys: list, code: str, context: str) -> list:
        texts, placeholder_maps = [], []
        for key in keys:
            text, placeholders = smart_string.extract_placeholders(split_disambiguation(key)[0])
            texts.append(text)
            placeholder_maps.append(placeholders)
        translated = self.client.translate_batch(texts, code, context)
        return [smart_string.restore_placeholders(t, p)
                for t, p in zip(translated, placeholder_maps)]


def translate_key(client: DeepLClient, data: TranslationData, key: str,
                  languages: Optional[Iterable[str]] = None, metadata=None,
                  use_context: bool = True, overwrite: bool = False) -> dict:
    """Translate a single key into *languages* (all non-default by default).

    Returns:
        {language: translation} for the languages that were written.
    """
    worker = TranslationWorker(client, data, metadata, languages, use_context)
    written = {}
    for code, group in worker.language_groups().items():
        targets = [l for l in group
                   if overwrite or not data.get_translation(key, l).strip()]
        if not targets:
            continue
        translation = worker.translate_keys([key], code, worker.context_for(key))[0]
        for language in targets:
            data.set_translation(key, language, translation)
            written[language] = translation
    return written
