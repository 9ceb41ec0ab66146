"""User settings persisted as _settings.json in the state directory."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields

from .project_model import KeyUpdateMode
from .similarity import METRICS
from .utils import atomic_write_json

log = logging.getLogger(__name__)

SETTINGS_FILE = "_settings.json"
METADATA_FILE = "_metadata.json"
STATE_DIR = "_localization"

# Settings restricted to a fixed set of values
CHOICES = {
    "similarity_metric": tuple(METRICS),
    "scene_source": ("build_settings", "manual"),
    "deepl_formality": ("default", "more", "less"),
}
THRESHOLDS = ("similarity_threshold", "case_similarity_threshold",
              "punctuation_similarity_threshold")


def _valid_value(name: str, value, default) -> bool:
    """True if *value* may replace *default* for the setting *name*."""
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool) and value > 0
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return 0.0 <= value <= 1.0 if name in THRESHOLDS else True
    if not isinstance(value, type(default)):
        return False
    return name not in CHOICES or value in CHOICES[name]


@dataclass
class Settings:
    # Similarity detection
    similarity_threshold: float = 0.85
    case_similarity_threshold: float = 0.95
    punctuation_similarity_threshold: float = 0.90
    similarity_metric: str = "levenshtein"      # or "sequence"
    check_similarity_on_extract: bool = True

    # Extraction
    extractor_enabled: dict = field(default_factory=dict)  # extractor name -> bool
    scene_source: str = "build_settings"        # or "manual"
    clear_sources_before_extract: bool = True
    key_update_mode: str = KeyUpdateMode.MERGE.value
    default_language: str = "English"

    # CSV
    csv_path: str = ""

    # DeepL
    deepl_api_key: str = ""
    deepl_pro: bool = False
    deepl_formality: str = "default"            # "default", "more" or "less"
    deepl_use_context: bool = True
    deepl_preserve_formatting: bool = True
    deepl_batch_size: int = 50

    @property
    def update_mode(self) -> KeyUpdateMode:
        try:
            return KeyUpdateMode(self.key_update_mode)
        except ValueError:
            log.warning("Unknown key update mode %r, using Merge", self.key_update_mode)
            return KeyUpdateMode.MERGE

    def is_extractor_enabled(self, name: str, default: bool = True) -> bool:
        return bool(self.extractor_enabled.get(name, default))

    @classmethod
    def load(cls, state_dir: str) -> "Settings":
        """Load settings; missing or corrupt files give defaults."""
        path = os.path.join(state_dir, SETTINGS_FILE)
        try:
            with open(path, "r", encoding="utf-8") as f:
                cfg = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError, OSError):
            return cls()  # No saved settings, use defaults
        if not isinstance(cfg, dict):
            log.warning("Ignoring malformed settings file %s", path)
            return cls()

        known = {f.name for f in fields(cls)}
        settings = cls()
        for key, value in cfg.items():
            if key not in known:
                log.debug("Ignoring unknown setting %r", key)
            elif _valid_value(key, value, getattr(settings, key)):
                setattr(settings, key, value)
            else:
                log.warning("Invalid value %r for setting %s in %s, using default %r",
                            value, key, path, getattr(settings, key))
        return settings

    def save(self, state_dir: str):
        try:
            atomic_write_json(os.path.join(state_dir, SETTINGS_FILE), asdict(self))
        except OSError as exc:
            log.debug("Settings not saved: %s", exc)  # Non-critical
