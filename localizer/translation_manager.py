"""Runtime lookup of translated text for the current language."""

import logging
from typing import Callable, Optional

from . import smart_string
from .translation_data import TranslationData, split_disambiguation

log = logging.getLogger(__name__)


class TranslationManager:
    """Translates keys of a TranslationData into the current language.

    Listeners registered with add_listener() are called with the new
    language after every successful change_language().
    """

    def __init__(self, data: TranslationData, language: Optional[str] = None):
        self.data = data
        self.current_language = data.default_language
        self._listeners: list = []
        self._lookup: dict = {}
        if language:
            self.change_language(language)

    def add_listener(self, callback: Callable[[str], None]):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[str], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def change_language(self, language: str) -> bool:
        if language not in self.data.supported_languages:
            log.error("Unsupported language: %s", language)
            return False
        if language == self.current_language:
            return True
        self.current_language = language
        self.reload()
        for callback in list(self._listeners):
            callback(language)
        return True

    def reload(self):
        """Rebuild the key -> translation table after the store changed."""
        self._lookup = {}
        if self.current_language == self.data.default_language:
            return
        for key in self.data.all_keys:
            text = self.data.get_translation(key, self.current_language)
            if text:
                self._lookup[key] = text

    def translate(self, text: str) -> str:
        """Translation of *text*, or its base text if there is none.

        The canonical text of *text*'s similarity group is looked up, and a
        ``|context`` suffix is dropped whenever the untranslated key is
        returned.
        """
        if not text:
            return text
        canonical = self.data.get_canonical_text(text)
        if self.current_language != self.data.default_language:
            translated = self._lookup.get(canonical)
            if translated:
                return translated
        return split_disambiguation(canonical)[0]

    def translate_smart(self, text: str, args: Optional[dict] = None) -> str:
        """Translate a smart string, then fill its placeholders from *args*."""
        if not text:
            return text
        translated = self.translate(text)
        if args:
            return smart_string.format(translated, args)
        return translated
