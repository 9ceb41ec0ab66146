"""Reader for Unity's text-serialized assets (.unity, .prefab, .asset).

A Unity YAML file is a stream of documents, each introduced by a header
``--- !u!<classID> &<fileID>`` and holding one object such as
``GameObject:``, ``RectTransform:`` or ``MonoBehaviour:``.  Documents are
split on those headers and each body is loaded with ruamel.yaml.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

log = logging.getLogger(__name__)

HEADER_RE = re.compile(r'^--- !u!(\d+) &(-?\d+)( stripped)?[ \t]*$', re.MULTILINE)

CLASS_GAME_OBJECT = 1
CLASS_TRANSFORM = 4
CLASS_MONO_BEHAVIOUR = 114
CLASS_RECT_TRANSFORM = 224

# Script GUIDs of Unity's built-in text components (package scripts have no
# .cs.meta inside Assets/)
BUILTIN_SCRIPTS = {
    "f4688fdb7df04437aeb418b961361dc5": "TextMeshProUGUI",
    "9541d86e2fd84c1d9990edf0852d74ab": "TextMeshPro",
    "5f7201a12d95ffc409449d95f23cf332": "Text",
}

_yaml = YAML(typ="safe", pure=True)


def scalar_text(value) -> Optional[str]:
    """Text of a plain scalar the loader may have resolved to bool/int/float.

    Unity writes ``m_text: True`` unquoted, which reads back as a bool.
    Returns None for null and for non-scalar values.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def ref_id(ref) -> str:
    """fileID of a ``{fileID: N}`` reference, "0" when null."""
    if isinstance(ref, dict):
        return str(ref.get("fileID", 0))
    return "0"


@dataclass
class UnityObject:
    class_id: int
    file_id: str
    type_name: str
    data: dict = field(default_factory=dict)
    stripped: bool = False

    @property
    def script_guid(self) -> Optional[str]:
        script = self.data.get("m_Script")
        if not isinstance(script, dict) or script.get("guid") is None:
            return None
        guid = script["guid"]
        if isinstance(guid, int):
            # All-digit GUIDs are read back as YAML integers
            return f"{guid:032d}"
        return str(guid)

    @property
    def game_object_id(self) -> str:
        return ref_id(self.data.get("m_GameObject"))

    @property
    def name(self) -> str:
        return str(self.data.get("m_Name") or "")


class UnityDocument:
    """All objects of one Unity YAML file, indexed by fileID."""

    def __init__(self, path: str = ""):
        self.path = path
        self.objects: dict = {}   # fileID -> UnityObject
        self._transforms: Optional[dict] = None

    @classmethod
    def load(cls, path: str) -> "UnityDocument":
        with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
            return cls.parse(f.read(), path)

    @classmethod
    def parse(cls, text: str, path: str = "") -> "UnityDocument":
        doc = cls(path)
        headers = list(HEADER_RE.finditer(text))
        if not headers:
            log.debug("%s has no Unity YAML documents (binary serialization?)", path or "<text>")
        for i, m in enumerate(headers):
            end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
            body = text[m.end():end]
            try:
                loaded = _yaml.load(body)
            except YAMLError as exc:
                log.warning("Skipping unparsable document &%s in %s: %s",
                            m.group(2), path or "<text>", exc)
                continue
            if not isinstance(loaded, dict) or not loaded:
                continue
            type_name, data = next(iter(loaded.items()))
            doc.objects[m.group(2)] = UnityObject(
                class_id=int(m.group(1)),
                file_id=m.group(2),
                type_name=str(type_name),
                data=data if isinstance(data, dict) else {},
                stripped=bool(m.group(3)),
            )
        return doc

    def __iter__(self):
        return iter(self.objects.values())

    def get(self, file_id) -> Optional[UnityObject]:
        return self.objects.get(str(file_id))

    def of_class(self, class_id: int) -> list:
        return [o for o in self.objects.values() if o.class_id == class_id]

    def mono_behaviours(self) -> list:
        return self.of_class(CLASS_MONO_BEHAVIOUR)

    def components_of(self, game_object_id: str) -> list:
        return [o for o in self.objects.values()
                if o.class_id != CLASS_GAME_OBJECT and o.game_object_id == str(game_object_id)]

    # ── Hierarchy ────────────────────────────────────────────────

    def _transform_index(self) -> dict:
        if self._transforms is None:
            self._transforms = {}
            for obj in self.objects.values():
                if obj.class_id in (CLASS_TRANSFORM, CLASS_RECT_TRANSFORM):
                    self._transforms[obj.game_object_id] = obj
        return self._transforms

    def game_object_path(self, game_object_id: str) -> str:
        """Hierarchy path like ``Canvas/Panel/Title`` of a GameObject."""
        transforms = self._transform_index()
        names = []
        seen = set()
        go_id = str(game_object_id)
        while go_id != "0" and go_id not in seen:
            seen.add(go_id)
            go = self.get(go_id)
            names.append(go.name if go is not None and go.name else f"<{go_id}>")
            transform = transforms.get(go_id)
            if transform is None:
                break
            father = self.get(ref_id(transform.data.get("m_Father")))
            go_id = father.game_object_id if father is not None else "0"
        return "/".join(reversed(names))


# ── Project-level indexes ────────────────────────────────────────

_GUID_RE = re.compile(r'^guid:\s*([0-9a-fA-F]{32})\s*$', re.MULTILINE)


def build_script_index(assets_dir: str) -> dict:
    """Map script GUIDs to class names using the ``.cs.meta`` files.

    Unity requires a MonoBehaviour's class name to match its file name, so
    ``Assets/Scripts/QuestGiver.cs.meta`` maps its GUID to ``QuestGiver``.
    """
    index = dict(BUILTIN_SCRIPTS)
    for dirpath, _dirnames, filenames in os.walk(assets_dir):
        for fname in filenames:
            if not fname.endswith(".cs.meta"):
                continue
            path = os.path.join(dirpath, fname)
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as f:
                    m = _GUID_RE.search(f.read())
            except OSError as exc:
                log.warning("Could not read %s: %s", path, exc)
                continue
            if m:
                index[m.group(1).lower()] = fname[:-len(".cs.meta")]
    return index


def read_build_scenes(project_dir: str) -> Optional[list]:
    """Enabled scene paths from ``ProjectSettings/EditorBuildSettings.asset``.

    Returns None when the settings file is absent or unreadable.
    """
    path = os.path.join(project_dir, "ProjectSettings", "EditorBuildSettings.asset")
    if not os.path.isfile(path):
        return None
    try:
        doc = UnityDocument.load(path)
    except OSError as exc:
        log.warning("Could not read build settings %s: %s", path, exc)
        return None
    scenes = []
    for obj in doc:
        for entry in obj.data.get("m_Scenes") or []:
            if isinstance(entry, dict) and entry.get("enabled") and entry.get("path"):
                scenes.append(str(entry["path"]))
    return scenes
