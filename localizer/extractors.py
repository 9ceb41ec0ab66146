"""Text extractors for the asset kinds of a Unity project.

Every extractor scans one kind of file below ``Assets/`` and registers the
strings it finds in a ``TranslationMetadata``.  Extraction can be limited
to folders or single assets through ``ExtractionSource`` lists, either per
extractor or globally.
"""

import csv
import io
import json
import logging
import os
import posixpath
import re
import xml.etree.ElementTree as ET
from typing import Callable, Optional

from .project_model import ExtractionSourceType, TextSourceInfo, TextSourceType
from .schema import SchemaRegistry
from .unity_yaml import UnityDocument, build_script_index, read_build_scenes, scalar_text
from .utils import normalize_asset_path, to_asset_path
from .walker import TextWalker

log = logging.getLogger(__name__)


class UnityProject:
    """A Unity project folder plus lazily built lookup tables."""

    def __init__(self, project_dir: str, registry: Optional[SchemaRegistry] = None):
        self.project_dir = os.path.abspath(project_dir)
        self.assets_dir = os.path.join(self.project_dir, "Assets")
        if not os.path.isdir(self.assets_dir):
            raise FileNotFoundError(
                f"No 'Assets' folder found in {project_dir}. "
                "Please select a Unity project folder."
            )
        self._registry = registry
        self._registry_loaded = False
        self._script_index: Optional[dict] = None

    @property
    def registry(self) -> SchemaRegistry:
        """Schemas from the project's C# sources, loaded on first use."""
        if self._registry is None:
            self._registry = SchemaRegistry()
        if not self._registry_loaded:
            self._registry_loaded = True
            count = self._registry.load_csharp_dir(self.assets_dir)
            log.debug("Scanned %d C# classes in %s", count, self.assets_dir)
        return self._registry

    @property
    def script_index(self) -> dict:
        if self._script_index is None:
            self._script_index = build_script_index(self.assets_dir)
        return self._script_index

    def abs_path(self, asset_path: str) -> str:
        return os.path.join(self.project_dir, *asset_path.split("/"))

    def asset_path(self, abs_path: str) -> str:
        return to_asset_path(self.project_dir, abs_path)

    def find_assets(self, extensions: tuple, root: str = "Assets") -> list:
        """Sorted asset paths below *root* ending with one of *extensions*."""
        found = []
        base = self.abs_path(root)
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames.sort()
            for fname in sorted(filenames):
                if fname.lower().endswith(extensions):
                    found.append(self.asset_path(os.path.join(dirpath, fname)))
        return found


def source_matches(asset_path: str, sources: list) -> bool:
    """True if *asset_path* lies in one of the folder/asset *sources*."""
    asset_path = normalize_asset_path(asset_path)
    for source in sources:
        if source.type == ExtractionSourceType.FOLDER:
            folder = normalize_asset_path(source.folder_path)
            if source.recursive:
                if asset_path == folder or asset_path.startswith(folder.rstrip("/") + "/"):
                    return True
            elif posixpath.dirname(asset_path) == folder:
                return True
        elif source.type == ExtractionSourceType.ASSET and source.asset_path:
            if asset_path == normalize_asset_path(source.asset_path):
                return True
    return False


class BaseTextExtractor:
    name = "BaseTextExtractor"
    source_type = TextSourceType.SCENE
    priority = 0
    enabled_by_default = True
    description = ""
    extensions: tuple = ()

    def __init__(self, project: UnityProject):
        self.project = project
        self.progress_callback: Optional[Callable[[str, float], None]] = None

    def extract(self, metadata) -> set:
        """Scan the project and return all strings found."""
        paths = self.candidate_paths(metadata)
        result = set()
        for i, path in enumerate(paths):
            try:
                result |= self.extract_file(path, metadata)
            except (OSError, ValueError, csv.Error) as exc:
                log.warning("[%s] Failed to process %s: %s", self.name, path, exc)
            self.report_progress((i + 1) / len(paths))
        log.info("[%s] %d strings from %d files", self.name, len(result), len(paths))
        return result

    def extract_file(self, asset_path: str, metadata) -> set:
        raise NotImplementedError

    def candidate_paths(self, metadata) -> list:
        return [p for p in self.project.find_assets(self.extensions)
                if self.should_process_path(p, metadata)]

    def should_process_path(self, asset_path: str, metadata) -> bool:
        """Extractor-specific sources win; else global sources; else everything."""
        if metadata is None:
            return True
        sources = metadata.get_extractor_sources(self.name)
        if not sources:
            sources = metadata.extraction_sources
        if not sources:
            return True
        return source_matches(asset_path, sources)

    def report_progress(self, fraction: float):
        if self.progress_callback:
            self.progress_callback(self.name, fraction)

    def _add(self, text, asset_path: str, metadata, result: set):
        if not isinstance(text, str) or not text.strip():
            return
        result.add(text)
        metadata.add_source(text, TextSourceInfo(self.source_type, asset_path))


# ── Scenes, prefabs, scriptable objects ──────────────────────────

# Script class -> serialized text field of Unity's built-in text components
TEXT_COMPONENT_FIELDS = {
    "TextMeshProUGUI": "m_text",
    "TextMeshPro": "m_text",
    "Text": "m_Text",
}
# Components that mark a GameObject's text as runtime-generated
SKIP_TEXT_MARKERS = frozenset({"DynamicTMP", "NotTranslatedTMP"})


class _UnityAssetExtractor(BaseTextExtractor):
    include_text_components = True

    def extract_file(self, asset_path: str, metadata) -> set:
        doc = UnityDocument.load(self.project.abs_path(asset_path))
        return self.extract_document(doc, asset_path, metadata)

    def extract_document(self, doc: UnityDocument, asset_path: str, metadata) -> set:
        result = set()
        index = self.project.script_index
        walker = TextWalker(metadata, self.project.registry)
        behaviours = [(obj, index.get((obj.script_guid or "").lower()))
                      for obj in doc.mono_behaviours()]

        skipped = {obj.game_object_id for obj, cls_name in behaviours
                   if cls_name in SKIP_TEXT_MARKERS}

        for obj, cls_name in behaviours:
            if cls_name is None or obj.stripped:
                continue
            if not self.accepts(obj):
                continue
            text_field = TEXT_COMPONENT_FIELDS.get(cls_name)
            if text_field is not None:
                if not self.include_text_components:
                    continue
                if obj.game_object_id in skipped:
                    log.debug("[%s] Skipping dynamic text on %s in %s", self.name,
                              doc.game_object_path(obj.game_object_id), asset_path)
                    continue
                self._add(scalar_text(obj.data.get(text_field)), asset_path, metadata, result)
                continue
            result |= walker.extract(obj.data, self.source_type, asset_path,
                                     schema_name=cls_name)
        return result

    def accepts(self, obj) -> bool:
        return True


class SceneTextExtractor(_UnityAssetExtractor):
    name = "SceneTextExtractor"
    source_type = TextSourceType.SCENE
    priority = 100
    description = ("Extracts text from all scenes in the build settings, including "
                   "TextMeshPro, UI Text components, and fields marked with "
                   "[Translated] attribute.")
    extensions = (".unity",)

    def __init__(self, project: UnityProject, scene_source: str = "build_settings"):
        super().__init__(project)
        self.scene_source = scene_source

    def candidate_paths(self, metadata) -> list:
        if self.scene_source == "manual":
            scenes = list(metadata.manual_scene_paths) if metadata is not None else []
        else:
            scenes = read_build_scenes(self.project.project_dir)
            if scenes is None:
                log.info("No EditorBuildSettings.asset, scanning every scene under Assets/")
                scenes = self.project.find_assets(self.extensions)
        paths = []
        for scene in scenes:
            scene = normalize_asset_path(scene)
            if scene in paths or not self.should_process_path(scene, metadata):
                continue
            if not os.path.isfile(self.project.abs_path(scene)):
                log.warning("[%s] Scene not found: %s", self.name, scene)
                continue
            paths.append(scene)
        return paths


class PrefabTextExtractor(_UnityAssetExtractor):
    name = "PrefabTextExtractor"
    source_type = TextSourceType.PREFAB
    priority = 90
    description = ("Extracts text from all prefabs in the project, including fields "
                   "marked with [Translated] attribute.")
    extensions = (".prefab",)


class ScriptableObjectTextExtractor(_UnityAssetExtractor):
    name = "ScriptableObjectTextExtractor"
    source_type = TextSourceType.SCRIPTABLE_OBJECT
    priority = 70
    description = ("Extracts text from all ScriptableObjects in the project, finding "
                   "fields marked with [Translated] attribute.")
    extensions = (".asset",)
    include_text_components = False

    def accepts(self, obj) -> bool:
        # ScriptableObjects are MonoBehaviour documents not attached to a GameObject
        return obj.game_object_id == "0"


# ── C# scripts ───────────────────────────────────────────────────

SCRIPT_PATTERNS = [
    re.compile(r'Translations\.Translate\(\s*"([^"]+)"\s*\)'),
    re.compile(r'"([^"]+)"\s*\.TranslateString\(\s*\)'),
    re.compile(r'SetTextTranslated\(\s*"([^"]+)"\s*[,)]'),
]
FORMAT_PATTERN = re.compile(r'Translations\.Format\(\s*"([^"]+)"\s*,([^)]*)\)')
STRING_ARG_PATTERN = re.compile(r'"([^"]+)"')


class ScriptTextExtractor(BaseTextExtractor):
    name = "ScriptTextExtractor"
    source_type = TextSourceType.SCRIPT
    priority = 80
    description = ("Extracts text from all C# scripts in the project, finding "
                   "Translate() and TranslateString() function calls.")
    extensions = (".cs",)

    def extract_file(self, asset_path: str, metadata) -> set:
        with open(self.project.abs_path(asset_path), "r", encoding="utf-8-sig",
                  errors="replace") as f:
            return self.extract_source(f.read(), asset_path, metadata)

    def extract_source(self, content: str, asset_path: str, metadata) -> set:
        result = set()
        for pattern in SCRIPT_PATTERNS:
            for m in pattern.finditer(content):
                self._add(m.group(1), asset_path, metadata, result)
        for m in FORMAT_PATTERN.finditer(content):
            self._add(m.group(1), asset_path, metadata, result)
            for arg in STRING_ARG_PATTERN.finditer(m.group(2)):
                self._add(arg.group(1), asset_path, metadata, result)
        return result


# ── External data files ──────────────────────────────────────────

DEFAULT_SEARCH_PATHS = (
    "Assets/Localization",
    "Assets/Resources/Localization",
    "Assets/Data/Localization",
)
TEXT_COLUMN_IDENTIFIERS = ("text", "string", "message", "description",
                           "content", "translation", "english", "default")
_KEY_VALUE_RE = re.compile(r'^\s*([\w.\-]+)\s*[=:]\s*(.+)$')
_JSON_STRING_RE = re.compile(r'"([^"\\]*(?:\\.[^"\\]*)*)"')
_ENTRY_KEYS = ("text", "texts", "values", "children")


_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9]+(?:[_.][A-Za-z0-9]+)+$")


def _looks_like_json_key(value: str) -> bool:
    return len(value) <= 3 or all(c.isalnum() or c == "_" for c in value)


class ExternalFileTextExtractor(BaseTextExtractor):
    name = "ExternalFileTextExtractor"
    source_type = TextSourceType.EXTERNAL_FILE
    priority = 60
    description = "Extracts text from external files (JSON, CSV, XML, TXT) in configured directories."
    extensions = (".json", ".csv", ".xml", ".txt")

    def candidate_paths(self, metadata) -> list:
        has_sources = metadata is not None and (
            metadata.get_extractor_sources(self.name) or metadata.extraction_sources)
        if has_sources:
            return super().candidate_paths(metadata)
        paths = []
        for root in DEFAULT_SEARCH_PATHS:
            if os.path.isdir(self.project.abs_path(root)):
                paths.extend(self.project.find_assets(self.extensions, root))
        return paths

    def extract_file(self, asset_path: str, metadata) -> set:
        with open(self.project.abs_path(asset_path), "r", encoding="utf-8-sig",
                  errors="replace") as f:
            content = f.read()
        texts = []
        ext = posixpath.splitext(asset_path)[1].lower()
        if ext == ".json":
            self._from_json(content, texts)
        elif ext == ".csv":
            self._from_csv(content, texts)
        elif ext == ".xml":
            try:
                self._from_xml(ET.fromstring(content), texts)
            except ET.ParseError as exc:
                log.warning("[%s] Invalid XML in %s: %s", self.name, asset_path, exc)
        elif ext == ".txt":
            self._from_txt(content, texts)

        result = set()
        for text in texts:
            self._add(text, asset_path, metadata, result)
        return result

    def _from_json(self, content: str, texts: list):
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            # Not valid JSON: pick out quoted values that do not look like keys
            for m in _JSON_STRING_RE.finditer(content):
                if not _looks_like_json_key(m.group(1)):
                    texts.append(m.group(1))
            return
        self._json_entry(data, texts)

    def _json_entry(self, node, texts: list):
        if isinstance(node, list):
            for item in node:
                self._json_entry(item, texts)
            return
        if not isinstance(node, dict):
            return
        if not any(k in node for k in _ENTRY_KEYS):
            for value in node.values():
                if isinstance(value, str) and not _IDENTIFIER_RE.match(value):
                    texts.append(value)
                elif isinstance(value, (dict, list)):
                    self._json_entry(value, texts)
            return
        if isinstance(node.get("text"), str):
            texts.append(node["text"])
        for item in node.get("texts") or []:
            if isinstance(item, str):
                texts.append(item)
        for kv in node.get("values") or []:
            if isinstance(kv, dict) and isinstance(kv.get("value"), str):
                texts.append(kv["value"])
        for child in node.get("children") or []:
            self._json_entry(child, texts)

    def _from_csv(self, content: str, texts: list):
        rows = list(csv.reader(io.StringIO(content)))
        if not rows:
            return
        header = [h.strip().lower() for h in rows[0]]
        columns = [i for i, h in enumerate(header)
                   if any(ident in h for ident in TEXT_COLUMN_IDENTIFIERS)]
        if not columns:
            # No recognizable text column: everything but the leading ID column
            columns = list(range(1, len(header)))
        for row in rows[1:]:
            for i in columns:
                if i < len(row):
                    texts.append(row[i].strip())

    def _from_xml(self, element, texts: list):
        if element.text and element.text.strip():
            texts.append(element.text.strip())
        for value in element.attrib.values():
            texts.append(value)
        for child in element:
            self._from_xml(child, texts)
            if child.tail and child.tail.strip():
                texts.append(child.tail.strip())

    def _from_txt(self, content: str, texts: list):
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            m = _KEY_VALUE_RE.match(line)
            texts.append(m.group(2).strip() if m else line)


def default_extractors(project: UnityProject, scene_source: str = "build_settings") -> list:
    """All built-in extractors, highest priority first."""
    extractors = [
        SceneTextExtractor(project, scene_source),
        PrefabTextExtractor(project),
        ScriptTextExtractor(project),
        ScriptableObjectTextExtractor(project),
        ExternalFileTextExtractor(project),
    ]
    return sorted(extractors, key=lambda e: e.priority, reverse=True)
