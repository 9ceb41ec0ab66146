"""Key registry: source locations, text states, categories and context."""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .utils import atomic_write_json

log = logging.getLogger(__name__)

MAX_SOURCES = 4           # Source references kept per key
MANUAL_CATEGORY = "Manual"  # Free-text context, valid without a declared category
GROUP_KEY_SEP = "|"


class TextSourceType(str, Enum):
    SCENE = "Scene"
    PREFAB = "Prefab"
    SCRIPT = "Script"
    SCRIPTABLE_OBJECT = "ScriptableObject"
    EXTERNAL_FILE = "ExternalFile"


class TextState(str, Enum):
    """Lifecycle flag assigned by reconciling two extraction passes."""
    NONE = "None"
    NEW = "New"
    RECENT = "Recent"
    MISSING = "Missing"


class KeyUpdateMode(str, Enum):
    MERGE = "Merge"                                     # Add new keys, keep the rest
    REPLACE_COMPLETELY = "ReplaceCompletely"            # Start from an empty key list
    REPLACE_PRESERVE_MISSING = "ReplaceButPreserveMissing"  # Drop stale keys, keep their metadata


class ExtractionSourceType(str, Enum):
    FOLDER = "Folder"
    ASSET = "Asset"


@dataclass(frozen=True)
class TextSourceInfo:
    """Where a key was found."""
    source_type: TextSourceType
    source_path: str


@dataclass
class ExtractionSource:
    """A folder or single asset to restrict an extractor to."""
    type: ExtractionSourceType = ExtractionSourceType.FOLDER
    folder_path: str = ""
    asset_path: str = ""
    recursive: bool = True

    def to_dict(self) -> dict:
        d = asdict(self)
        d["type"] = self.type.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ExtractionSource":
        return cls(
            type=ExtractionSourceType(d.get("type", "Folder")),
            folder_path=d.get("folder_path", ""),
            asset_path=d.get("asset_path", ""),
            recursive=d.get("recursive", True),
        )


@dataclass
class CategoryTemplate:
    format: str = "This text appears in {value}"  # {value} is substituted

    def format_context(self, value: str) -> str:
        if not value:
            return ""
        return self.format.replace("{value}", value) + "."


@dataclass
class SimilarityGroupMetadata:
    reason: str = ""
    similarity_score: float = 0.0
    source_info: Optional[str] = None
    created_time: datetime = field(default_factory=datetime.now)
    last_modified_time: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "similarity_score": self.similarity_score,
            "source_info": self.source_info,
            "created_time": self.created_time.isoformat(),
            "last_modified_time": self.last_modified_time.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SimilarityGroupMetadata":
        meta = cls(
            reason=d.get("reason", ""),
            similarity_score=float(d.get("similarity_score", 0.0)),
            source_info=d.get("source_info"),
        )
        for attr in ("created_time", "last_modified_time"):
            raw = d.get(attr)
            if raw:
                try:
                    setattr(meta, attr, datetime.fromisoformat(raw))
                except ValueError:
                    log.warning("Ignoring malformed %s %r in group metadata", attr, raw)
        return meta


def group_key(texts: Iterable[str]) -> str:
    """Stable identity of a similarity group, independent of member order."""
    return GROUP_KEY_SEP.join(sorted(texts))


@dataclass
class TranslationMetadata:
    """Long-lived metadata store for every extracted key.

    Holds source references, reconciliation states, category/context
    annotations, similarity group notes and extraction configuration.
    """
    text_sources: dict = field(default_factory=dict)        # text -> [TextSourceInfo]
    text_states: dict = field(default_factory=dict)         # text -> TextState
    text_categories: dict = field(default_factory=dict)     # category -> [allowed values]
    category_templates: dict = field(default_factory=dict)  # category -> CategoryTemplate
    text_contexts: dict = field(default_factory=dict)       # text -> {category: value}
    similarity_group_metadata: dict = field(default_factory=dict)  # group key -> SimilarityGroupMetadata
    custom_language_mappings: dict = field(default_factory=dict)   # language -> DeepL code
    extraction_sources: list = field(default_factory=list)  # [ExtractionSource]
    extractor_sources: dict = field(default_factory=dict)   # extractor name -> [ExtractionSource]
    manual_scene_paths: list = field(default_factory=list)

    # ── Sources ──────────────────────────────────────────────────

    def add_source(self, text: str, source_info: TextSourceInfo):
        """Register *source_info* for *text*, creating the key if needed.

        Sources are kept in first-seen order, capped at MAX_SOURCES, and
        exact duplicates (same type and path) are ignored.
        """
        sources = self.text_sources.setdefault(text, [])
        if source_info not in sources and len(sources) < MAX_SOURCES:
            sources.append(source_info)

        if text not in self.text_contexts:
            self.text_contexts[text] = {cat: "" for cat in self.text_categories}

    def get_sources(self, text: str) -> list:
        return list(self.text_sources.get(text, []))

    def has_sources(self, text: str) -> bool:
        return bool(self.text_sources.get(text))

    def clear_sources(self, text: str):
        if text in self.text_sources:
            self.text_sources[text].clear()

    def clear_all_sources(self):
        self.text_sources.clear()

    def get_all_sources(self) -> dict:
        return {text: list(sources) for text, sources in self.text_sources.items()}

    # ── Text states ──────────────────────────────────────────────

    def get_text_state(self, text: str) -> TextState:
        return self.text_states.get(text, TextState.NONE)

    def set_text_state(self, text: str, state: TextState):
        self.text_states[text] = state

    def is_new_text(self, text: str) -> bool:
        return self.get_text_state(text) == TextState.NEW

    def is_recent_text(self, text: str) -> bool:
        return self.get_text_state(text) == TextState.RECENT

    def is_missing_text(self, text: str) -> bool:
        return self.get_text_state(text) == TextState.MISSING

    def clear_text_states(self):
        self.text_states.clear()

    def reconcile(self, previous_keys: Iterable[str], extracted: Iterable[str],
                  mode: KeyUpdateMode = KeyUpdateMode.MERGE) -> dict:
        """Assign text states after an extraction pass.

        Keys only in *extracted* become NEW, keys only in *previous_keys*
        become MISSING.  Keys present in both become RECENT, except in
        REPLACE_COMPLETELY mode where every extracted key counts as NEW.

        Returns:
            Dict with stats: {"new": int, "recent": int, "missing": int}
        """
        previous = set(previous_keys)
        current = set(extracted)
        self.clear_text_states()

        stats = {"new": 0, "recent": 0, "missing": 0}
        for text in current:
            if mode == KeyUpdateMode.REPLACE_COMPLETELY or text not in previous:
                self.set_text_state(text, TextState.NEW)
                stats["new"] += 1
            else:
                self.set_text_state(text, TextState.RECENT)
                stats["recent"] += 1
        for text in previous - current:
            self.set_text_state(text, TextState.MISSING)
            stats["missing"] += 1
        return stats

    # ── Categories and context ───────────────────────────────────

    def add_category(self, name: str, template: Optional[CategoryTemplate] = None):
        """Declare a category; existing keys get an empty value for it."""
        if name in self.text_categories:
            return
        self.text_categories[name] = []
        self.category_templates[name] = template or CategoryTemplate()
        for context in self.text_contexts.values():
            context.setdefault(name, "")

    def update_category_template(self, name: str, template: CategoryTemplate):
        self.category_templates[name] = template

    def remove_category(self, name: str):
        self.text_categories.pop(name, None)
        self.category_templates.pop(name, None)
        for context in self.text_contexts.values():
            context.pop(name, None)

    def add_category_value(self, category: str, value: str):
        """Add an allowed value (option) to *category*."""
        values = self.text_categories.get(category)
        if values is not None and value not in values:
            values.append(value)

    def update_text_category(self, category: str, old_value: str, new_value: str):
        """Rename one value of *category* from *old_value* to *new_value*.

        Only context entries belonging to *category* are migrated; free-text
        values stored under other categories are left alone.
        """
        values = self.text_categories.get(category)
        if values is None:
            return
        if new_value not in values:
            values.append(new_value)
        if old_value:
            for context in self.text_contexts.values():
                if context.get(category) == old_value:
                    context[category] = new_value
        if old_value in values and old_value != new_value:
            values.remove(old_value)

    def get_context(self, text: str) -> dict:
        if text not in self.text_contexts:
            self.text_contexts[text] = {cat: "" for cat in self.text_categories}
        return self.text_contexts[text]

    def set_context(self, text: str, context: dict):
        self.text_contexts[text] = dict(context)

    def update_context(self, text: str, category: str, value: str):
        self.text_contexts.setdefault(text, {})[category] = value

    def get_translation_context(self, text: str) -> str:
        """Build the natural-language context sentence for translators."""
        context = self.text_contexts.get(text)
        if not context:
            return ""

        parts = []
        for category, value in context.items():
            if category != MANUAL_CATEGORY and (
                    category not in self.text_categories or not value):
                continue
            template = self.category_templates.get(category)
            if template is not None:
                formatted = template.format_context(value)
                if formatted:
                    parts.append(formatted)
            elif value:
                parts.append(f"{category}: {value}")
        return " ".join(parts)

    # ── Similarity group notes ───────────────────────────────────

    def set_group_metadata(self, texts: Iterable[str], reason: str,
                           similarity_score: float, source_info: Optional[str] = None):
        key = group_key(texts)
        meta = self.similarity_group_metadata.get(key)
        if meta is None:
            meta = SimilarityGroupMetadata()
            self.similarity_group_metadata[key] = meta
        meta.reason = reason
        meta.similarity_score = similarity_score
        meta.source_info = source_info
        meta.last_modified_time = datetime.now()

    def get_group_metadata(self, texts: Iterable[str]) -> Optional[SimilarityGroupMetadata]:
        return self.similarity_group_metadata.get(group_key(texts))

    def clear_group_metadata(self, texts: Iterable[str]):
        self.similarity_group_metadata.pop(group_key(texts), None)

    # ── Extraction configuration ─────────────────────────────────

    def get_extractor_sources(self, extractor_name: str) -> list:
        return self.extractor_sources.get(extractor_name, [])

    def set_extractor_sources(self, extractor_name: str, sources: list):
        self.extractor_sources[extractor_name] = list(sources)

    # ── Persistence ──────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "text_sources": {
                text: [{"source_type": s.source_type.value, "source_path": s.source_path}
                       for s in sources]
                for text, sources in self.text_sources.items()
            },
            "text_states": {text: state.value for text, state in self.text_states.items()},
            "text_categories": self.text_categories,
            "category_templates": {name: t.format for name, t in self.category_templates.items()},
            "text_contexts": self.text_contexts,
            "similarity_group_metadata": {
                key: meta.to_dict() for key, meta in self.similarity_group_metadata.items()
            },
            "custom_language_mappings": self.custom_language_mappings,
            "extraction_sources": [s.to_dict() for s in self.extraction_sources],
            "extractor_sources": {
                name: [s.to_dict() for s in sources]
                for name, sources in self.extractor_sources.items()
            },
            "manual_scene_paths": self.manual_scene_paths,
        }

    def save_state(self, path: str):
        """Save the registry to a JSON file."""
        atomic_write_json(path, self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "TranslationMetadata":
        meta = cls()
        for text, sources in data.get("text_sources", {}).items():
            items = []
            for s in sources:
                try:
                    items.append(TextSourceInfo(TextSourceType(s["source_type"]), s["source_path"]))
                except (KeyError, ValueError, TypeError):
                    log.warning("Skipping malformed source for %r: %r", text, s)
            meta.text_sources[text] = items[:MAX_SOURCES]
        for text, state in data.get("text_states", {}).items():
            try:
                meta.text_states[text] = TextState(state)
            except ValueError:
                log.warning("Unknown text state %r for %r", state, text)
        meta.text_categories = {k: list(v) for k, v in data.get("text_categories", {}).items()}
        meta.category_templates = {
            name: CategoryTemplate(fmt) for name, fmt in data.get("category_templates", {}).items()
        }
        meta.text_contexts = {k: dict(v) for k, v in data.get("text_contexts", {}).items()}
        meta.similarity_group_metadata = {
            key: SimilarityGroupMetadata.from_dict(d)
            for key, d in data.get("similarity_group_metadata", {}).items()
        }
        meta.custom_language_mappings = dict(data.get("custom_language_mappings", {}))
        meta.extraction_sources = [
            ExtractionSource.from_dict(d) for d in data.get("extraction_sources", [])
        ]
        meta.extractor_sources = {
            name: [ExtractionSource.from_dict(d) for d in sources]
            for name, sources in data.get("extractor_sources", {}).items()
        }
        meta.manual_scene_paths = list(data.get("manual_scene_paths", []))
        return meta

    @classmethod
    def load_state(cls, path: str) -> "TranslationMetadata":
        """Load the registry from JSON; a missing file yields an empty registry."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            log.info("No metadata at %s, starting with an empty registry", path)
            return cls()
        except (json.JSONDecodeError, OSError) as exc:
            log.error("Failed to load metadata from %s: %s", path, exc)
            return cls()
        return cls.from_dict(data)
