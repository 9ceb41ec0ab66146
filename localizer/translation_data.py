"""Translation store: canonical key list plus index-aligned language lists."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, Optional

from . import DISAMBIGUATION_SEP
from .project_model import KeyUpdateMode, group_key, GROUP_KEY_SEP
from .utils import atomic_write_json, sanitize_file_name

log = logging.getLogger(__name__)

DATA_FILE = "TranslationData.json"


@dataclass
class LanguageData:
    """Translated strings for one language, position i = key i."""
    language: str
    all_text: list = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return f"LanguageData_{sanitize_file_name(self.language)}.json"


def split_disambiguation(text: str) -> tuple:
    """Split ``"Word|context"`` into ``("Word", "context")``.

    Returns ``(text, None)`` when there is no usable suffix.  Pipes inside
    ``{...}`` placeholders (plural forms) do not count.
    """
    if not text:
        return text, None
    depth = 0
    for idx, c in enumerate(text):
        if c == "{":
            depth += 1
        elif c == "}":
            depth = max(depth - 1, 0)
        elif c == DISAMBIGUATION_SEP and depth == 0:
            if 0 < idx < len(text) - 1:
                return text[:idx], text[idx + 1:]
            return text, None
    return text, None


class TranslationData:
    """Owns the key list and one LanguageData per non-default language.

    Every change to ``all_keys`` is mirrored into all language lists so
    that position i always refers to the same key everywhere.
    """

    def __init__(self, default_language: str = "English",
                 supported_languages: Optional[list] = None):
        self.default_language = default_language
        self.supported_languages = [default_language]
        self.all_keys: list = []
        self.language_data: dict = {}      # language -> LanguageData
        self.key_contexts: dict = {}       # key -> disambiguation/context note
        self.similarity_group_selections: dict = {}  # group key -> selected text
        self._canonical_cache: dict = {}
        self._index: dict = {}
        for lang in supported_languages or []:
            self.add_language(lang)

    # ── Languages ────────────────────────────────────────────────

    @property
    def languages(self) -> list:
        """Non-default languages, in column order."""
        return self.supported_languages[1:]

    def add_language(self, language: str):
        if language in self.supported_languages:
            return
        self.supported_languages.append(language)
        self.language_data[language] = LanguageData(language, [""] * len(self.all_keys))

    def remove_language(self, language: str):
        if language == self.default_language or language not in self.supported_languages:
            return
        self.supported_languages.remove(language)
        self.language_data.pop(language, None)

    def update_default_language(self, new_default: str):
        """Rename the default language column (the key column)."""
        if new_default == self.default_language:
            return
        if new_default in self.language_data:
            log.warning("Cannot make %r the default language: it already has a "
                        "translation column", new_default)
            return
        self.supported_languages[0] = new_default
        self.default_language = new_default

    # ── Keys ─────────────────────────────────────────────────────

    def _rebuild_index(self):
        self._index = {key: i for i, key in enumerate(self.all_keys)}

    def index_of(self, key: str) -> int:
        if len(self._index) != len(self.all_keys):
            self._rebuild_index()
        return self._index.get(key, -1)

    def has_key(self, key: str) -> bool:
        return self.index_of(key) >= 0

    def add_key(self, key: str, context: Optional[str] = None) -> bool:
        """Append *key* with blank translations; returns False if present."""
        if self.has_key(key):
            return False
        self.all_keys.append(key)
        self._index[key] = len(self.all_keys) - 1
        for ld in self.language_data.values():
            ld.all_text.append("")
        if context:
            self.key_contexts[key] = context
        return True

    def remove_key(self, key: str) -> bool:
        idx = self.index_of(key)
        if idx < 0:
            return False
        del self.all_keys[idx]
        for ld in self.language_data.values():
            if idx < len(ld.all_text):
                del ld.all_text[idx]
        self.key_contexts.pop(key, None)
        self._rebuild_index()
        return True

    def sort_keys(self):
        """Sort keys alphabetically, permuting every language list alongside."""
        self.ensure_alignment()
        order = sorted(range(len(self.all_keys)), key=lambda i: self.all_keys[i])
        self.all_keys = [self.all_keys[i] for i in order]
        for ld in self.language_data.values():
            ld.all_text = [ld.all_text[i] for i in order]
        self._rebuild_index()

    def clear(self):
        self.all_keys.clear()
        for ld in self.language_data.values():
            ld.all_text.clear()
        self._index.clear()
        self.key_contexts.clear()

    def ensure_alignment(self):
        """Pad or truncate language lists to the key count."""
        n = len(self.all_keys)
        for ld in self.language_data.values():
            if len(ld.all_text) != n:
                log.warning("Language %s has %d entries for %d keys, realigning",
                            ld.language, len(ld.all_text), n)
                ld.all_text = (ld.all_text + [""] * n)[:n]

    # ── Translations ─────────────────────────────────────────────

    def get_translation(self, key: str, language: str) -> str:
        if language == self.default_language:
            return key
        idx = self.index_of(key)
        ld = self.language_data.get(language)
        if idx < 0 or ld is None or idx >= len(ld.all_text):
            return ""
        return ld.all_text[idx] or ""

    def set_translation(self, key: str, language: str, text: str):
        idx = self.index_of(key)
        if idx < 0:
            raise KeyError(f"Unknown translation key: {key!r}")
        ld = self.language_data.get(language)
        if ld is None:
            raise KeyError(f"Unsupported language: {language!r}")
        self.ensure_alignment()
        ld.all_text[idx] = text

    def translations_for(self, key: str) -> dict:
        """All non-default translations of *key*: {language: text}."""
        return {lang: self.get_translation(key, lang) for lang in self.languages}

    def coverage(self, language: str) -> tuple:
        """Return (translated_count, total_count) for a language."""
        ld = self.language_data.get(language)
        total = len(self.all_keys)
        if ld is None:
            return 0, total
        return sum(1 for t in ld.all_text[:total] if t and t.strip()), total

    # ── Extraction merge ─────────────────────────────────────────

    def update_from_extraction(self, extracted: Iterable[str],
                               mode: KeyUpdateMode = KeyUpdateMode.MERGE,
                               metadata=None) -> dict:
        """Bring the key list in line with a fresh extraction.

        MERGE keeps every existing key; REPLACE_COMPLETELY starts from an
        empty list (translations are dropped); REPLACE_PRESERVE_MISSING
        removes keys that were not extracted but keeps their metadata
        apart from source references.

        Returns:
            Dict with stats: {"added": int, "removed": int}
        """
        extracted = set(extracted)
        stats = {"added": 0, "removed": 0}

        if mode == KeyUpdateMode.REPLACE_COMPLETELY:
            stats["removed"] = len(self.all_keys)
            self.clear()
        elif mode == KeyUpdateMode.REPLACE_PRESERVE_MISSING:
            for key in [k for k in self.all_keys if k not in extracted]:
                if metadata is not None:
                    metadata.clear_sources(key)
                self.remove_key(key)
                stats["removed"] += 1

        for text in sorted(extracted):
            base, context = split_disambiguation(text)
            if self.add_key(text, context=context if base != text else None):
                stats["added"] += 1

        self.sort_keys()
        return stats

    # ── Similarity group review ──────────────────────────────────

    def set_group_status(self, texts: Iterable[str], selected_text: Optional[str]):
        """Record the reviewer's canonical choice for a similarity group.

        A selection that is not a member of the group clears the entry.
        """
        texts = list(texts)
        key = group_key(texts)
        if selected_text is not None and selected_text in texts:
            self.similarity_group_selections[key] = selected_text
        else:
            self.similarity_group_selections.pop(key, None)
        self._canonical_cache.clear()

    def get_group_status(self, texts: Iterable[str]) -> tuple:
        """Return (selected_text, is_pending) for a group."""
        selected = self.similarity_group_selections.get(group_key(texts))
        return selected, selected is None

    def clear_group_status(self, texts: Iterable[str]):
        self.similarity_group_selections.pop(group_key(texts), None)
        self._canonical_cache.clear()

    def _rebuild_canonical_cache(self):
        self._canonical_cache = {}
        for key, selected in self.similarity_group_selections.items():
            for text in key.split(GROUP_KEY_SEP):
                self._canonical_cache[text] = (key, selected)

    def get_canonical_text(self, text: str) -> str:
        """The selected text of *text*'s group, or *text* itself."""
        if not self._canonical_cache and self.similarity_group_selections:
            self._rebuild_canonical_cache()
        entry = self._canonical_cache.get(text)
        return entry[1] if entry else text

    def has_different_canonical_version(self, text: str) -> bool:
        return self.get_canonical_text(text) != text

    def get_all_grouped_texts(self) -> list:
        self._rebuild_canonical_cache()
        groups = {}
        for text, (key, _selected) in self._canonical_cache.items():
            groups.setdefault(key, []).append(text)
        return list(groups.values())

    # ── Persistence ──────────────────────────────────────────────

    def save_state(self, directory: str):
        """Write TranslationData.json plus one LanguageData_*.json per language."""
        self.ensure_alignment()
        atomic_write_json(os.path.join(directory, DATA_FILE), {
            "default_language": self.default_language,
            "supported_languages": self.supported_languages,
            "all_keys": self.all_keys,
            "key_contexts": self.key_contexts,
            "similarity_group_selections": self.similarity_group_selections,
            "language_files": {lang: ld.file_name for lang, ld in self.language_data.items()},
        })
        for ld in self.language_data.values():
            atomic_write_json(os.path.join(directory, ld.file_name), {
                "language": ld.language,
                "all_text": ld.all_text,
            })

    @classmethod
    def load_state(cls, directory: str) -> "TranslationData":
        """Load a store saved by save_state().

        A missing TranslationData.json yields an empty store; a missing or
        unreadable language file yields a blank column for that language.
        """
        path = os.path.join(directory, DATA_FILE)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            log.info("No translation data at %s, starting empty", path)
            return cls()
        except (json.JSONDecodeError, OSError) as exc:
            log.error("Failed to load translation data from %s: %s", path, exc)
            return cls()

        store = cls(default_language=data.get("default_language", "English"))
        store.all_keys = list(data.get("all_keys", []))
        store.key_contexts = dict(data.get("key_contexts", {}))
        store.similarity_group_selections = dict(data.get("similarity_group_selections", {}))
        files = data.get("language_files", {})
        for lang in data.get("supported_languages", [])[1:]:
            store.supported_languages.append(lang)
            ld = LanguageData(lang)
            lang_path = os.path.join(directory, files.get(lang, ld.file_name))
            try:
                with open(lang_path, "r", encoding="utf-8") as f:
                    ld.all_text = list(json.load(f).get("all_text", []))
            except (FileNotFoundError, json.JSONDecodeError, OSError) as exc:
                log.warning("Language data for %s unavailable (%s), using blanks", lang, exc)
            store.language_data[lang] = ld
        store.ensure_alignment()
        store._rebuild_index()
        return store
