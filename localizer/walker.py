"""Schema-guided walk over object graphs collecting translatable strings.

Works on two kinds of nodes:

* Python objects (dataclasses or plain classes), matched to a schema by
  class name through ``SchemaRegistry.schema_for``.
* Mappings decoded from Unity YAML, whose schema is given by the caller
  (the MonoBehaviour's script class) or by the parent's ``field_types``.
"""

import dataclasses
import logging
from enum import Enum
from typing import Optional

from .project_model import TextSourceInfo, TextSourceType
from .schema import ClassSchema, SchemaRegistry, default_registry

log = logging.getLogger(__name__)

# Serialization bookkeeping written by Unity into every component document
UNITY_INTERNAL_FIELDS = frozenset({
    "m_ObjectHideFlags", "m_CorrespondingSourceObject", "m_PrefabInstance",
    "m_PrefabAsset", "m_GameObject", "m_Enabled", "m_EditorHideFlags",
    "m_Script", "m_Name", "m_EditorClassIdentifier",
})

_SCALARS = (int, float, bool, bytes, Enum)


def is_unity_dictionary(value) -> bool:
    """Unity serializes dictionaries as parallel ``keys``/``values`` lists."""
    return (isinstance(value, dict) and isinstance(value.get("keys"), list)
            and isinstance(value.get("values"), list))


def iter_fields(node):
    """Yield (name, value) pairs of a node's own data fields."""
    if isinstance(node, dict):
        for name, value in node.items():
            if name not in UNITY_INTERNAL_FIELDS:
                yield str(name), value
    elif dataclasses.is_dataclass(node) and not isinstance(node, type):
        for f in dataclasses.fields(node):
            yield f.name, getattr(node, f.name, None)
    elif hasattr(node, "__dict__"):
        yield from vars(node).items()


class TextWalker:
    """Collects strings from one object graph into a metadata registry."""

    def __init__(self, metadata, registry: Optional[SchemaRegistry] = None):
        self.metadata = metadata
        self.registry = registry or default_registry
        self._result: set = set()
        self._active: set = set()
        self._source: Optional[TextSourceInfo] = None

    def extract(self, obj, source_type: TextSourceType, source_path: str,
                schema_name: Optional[str] = None) -> set:
        """Walk *obj* and return every string found.

        Each string is also registered in ``metadata`` with the source
        (*source_type*, *source_path*).
        """
        self._result = set()
        self._active = set()
        self._source = TextSourceInfo(source_type, source_path)
        if obj is None:
            return set()
        schema = self.registry.get(schema_name) if schema_name else None
        if schema is None and not isinstance(obj, dict):
            schema = self.registry.schema_for(obj)
        self._walk(obj, schema)
        return self._result

    # ── Internals ────────────────────────────────────────────────

    def _add(self, text):
        if not isinstance(text, str) or not text.strip():
            return
        self._result.add(text)
        self.metadata.add_source(text, self._source)

    def _schema_of(self, value, type_name: Optional[str] = None) -> Optional[ClassSchema]:
        if isinstance(value, dict):
            return self.registry.get(type_name)
        if isinstance(value, (str, list, tuple, set, frozenset, *_SCALARS)) or value is None:
            return None
        return self.registry.schema_for(value)

    def _walk(self, node, schema: Optional[ClassSchema]):
        if node is None or schema is None or schema.excluded:
            return
        if id(node) in self._active:
            return
        self._active.add(id(node))
        try:
            for name, value in iter_fields(node):
                if value is None or name in schema.excluded_fields:
                    continue
                type_name = schema.field_types.get(name)
                if schema.translate_all or name in schema.translated_fields:
                    self._extract_value(value, type_name)
                elif schema.recursive:
                    child = self._schema_of(value, type_name)
                    if child is not None and child.translate_all and not child.excluded:
                        self._walk(value, child)
        finally:
            self._active.discard(id(node))

    def _extract_value(self, value, type_name: Optional[str]):
        if value is None or isinstance(value, _SCALARS):
            return
        if isinstance(value, str):
            self._add(value)
        elif isinstance(value, (list, tuple, set, frozenset)):
            for item in value:
                if isinstance(item, str):
                    self._add(item)
                elif item is not None:
                    child = self._schema_of(item, type_name)
                    if child is not None and child.has_markers:
                        self._walk(item, child)
                    elif isinstance(item, dict) and child is None:
                        self._extract_mapping(item)
        elif isinstance(value, dict):
            if is_unity_dictionary(value):
                for item in value["values"]:
                    self._add(item)
                return
            child = self.registry.get(type_name)
            if child is not None:
                self._walk(value, child)
            else:
                self._extract_mapping(value)
        else:
            self._walk(value, self._schema_of(value))

    def _extract_mapping(self, mapping: dict):
        """A mapping with no known schema is treated as a string map."""
        for name, item in mapping.items():
            if name not in UNITY_INTERNAL_FIELDS and isinstance(item, str):
                self._add(item)
