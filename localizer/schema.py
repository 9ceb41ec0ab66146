"""Translation markers: which classes and fields carry translatable text.

Schemas come from three places and end up in one ``SchemaRegistry``:

* Python classes decorated with ``@translated`` / ``@not_translated``, or
  dataclasses using ``translated_field()`` / ``not_translated_field()``.
* Explicit ``registry.register(name, ...)`` calls.
* C# sources scanned for ``[Translated]`` / ``[NotTranslated]``
  attributes, so serialized Unity data can be walked by script class name.
"""

import dataclasses
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

log = logging.getLogger(__name__)

TRANSLATED_META = "translated"


@dataclass
class ClassSchema:
    name: str
    translate_all: bool = False     # every field unless excluded
    recursive: bool = True          # descend into nested translated classes
    excluded: bool = False          # class never walked
    translated_fields: set = field(default_factory=set)
    excluded_fields: set = field(default_factory=set)
    field_types: dict = field(default_factory=dict)  # field -> element class name
    base: Optional[str] = None

    @property
    def has_markers(self) -> bool:
        return self.translate_all or bool(self.translated_fields)


class SchemaRegistry:
    def __init__(self):
        self._schemas: dict = {}
        self._resolved: dict = {}
        self._harvested: set = set()

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def register(self, name: str, translate_all: bool = False, recursive: bool = True,
                 excluded: bool = False, translated_fields: Iterable[str] = (),
                 excluded_fields: Iterable[str] = (), field_types: Optional[dict] = None,
                 base: Optional[str] = None) -> ClassSchema:
        """Declare (or extend) the schema of class *name*."""
        schema = self._schemas.get(name)
        if schema is None:
            schema = ClassSchema(name)
            self._schemas[name] = schema
        schema.translate_all = schema.translate_all or translate_all
        schema.recursive = schema.recursive and recursive
        schema.excluded = schema.excluded or excluded
        schema.translated_fields.update(translated_fields)
        schema.excluded_fields.update(excluded_fields)
        schema.field_types.update(field_types or {})
        schema.base = base or schema.base
        self._resolved.clear()
        return schema

    def get(self, name: Optional[str]) -> Optional[ClassSchema]:
        """Schema for *name* with base-class markers folded in."""
        if not name or name not in self._schemas:
            return None
        if name not in self._resolved:
            self._resolved[name] = self._resolve(name, set())
        return self._resolved[name]

    def _resolve(self, name: str, seen: set) -> ClassSchema:
        own = self._schemas[name]
        seen.add(name)
        if not own.base or own.base not in self._schemas or own.base in seen:
            return own
        parent = self._resolve(own.base, seen)
        return ClassSchema(
            name=name,
            translate_all=own.translate_all or parent.translate_all,
            recursive=own.recursive if own.translate_all else parent.recursive and own.recursive,
            excluded=own.excluded or parent.excluded,
            translated_fields=parent.translated_fields | own.translated_fields,
            excluded_fields=parent.excluded_fields | own.excluded_fields,
            field_types={**parent.field_types, **own.field_types},
            base=own.base,
        )

    def schema_for(self, obj) -> Optional[ClassSchema]:
        """Schema for a Python object, by class name along its MRO."""
        cls = obj if isinstance(obj, type) else type(obj)
        for klass in cls.__mro__:
            if klass is object:
                break
            if klass not in self._harvested and dataclasses.is_dataclass(klass):
                self._harvested.add(klass)
                self._register_dataclass_fields(klass)
            schema = self.get(klass.__name__)
            if schema is not None:
                return schema
        return None

    def _register_dataclass_fields(self, klass: type):
        marked = {f.name: f.metadata[TRANSLATED_META] for f in dataclasses.fields(klass)
                  if TRANSLATED_META in f.metadata}
        if marked:
            self.register(
                klass.__name__,
                translated_fields=[n for n, on in marked.items() if on],
                excluded_fields=[n for n, on in marked.items() if not on],
            )

    # ── C# scanning ──────────────────────────────────────────────

    def load_csharp_source(self, text: str) -> int:
        """Register every class of a C# file; returns how many were found."""
        found = scan_csharp(text)
        for schema in found:
            self.register(schema.name, schema.translate_all, schema.recursive,
                          schema.excluded, schema.translated_fields,
                          schema.excluded_fields, schema.field_types, schema.base)
        return len(found)

    def load_csharp_dir(self, root: str) -> int:
        """Scan all ``.cs`` files below *root*."""
        count = 0
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for fname in sorted(filenames):
                if not fname.endswith(".cs"):
                    continue
                path = os.path.join(dirpath, fname)
                try:
                    with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
                        count += self.load_csharp_source(f.read())
                except OSError as exc:
                    log.warning("Could not read %s: %s", path, exc)
        log.debug("Loaded %d class schemas from %s", count, root)
        return count


default_registry = SchemaRegistry()


# ── Python registration helpers ──────────────────────────────────

def translated(cls=None, *, recursive: bool = True, registry: Optional[SchemaRegistry] = None):
    """Class decorator: every field of the class is translatable.

    Usable bare (``@translated``) or with options
    (``@translated(recursive=False)``).
    """
    def wrap(klass):
        (registry or default_registry).register(
            klass.__name__, translate_all=True, recursive=recursive)
        return klass
    if cls is not None:
        return wrap(cls)
    return wrap


def not_translated(cls=None, *, registry: Optional[SchemaRegistry] = None):
    """Class decorator: instances are never walked for text."""
    def wrap(klass):
        (registry or default_registry).register(klass.__name__, excluded=True)
        return klass
    if cls is not None:
        return wrap(cls)
    return wrap


def translated_field(**kwargs):
    """``dataclasses.field`` marked as translatable."""
    kwargs.setdefault("metadata", {})
    kwargs["metadata"] = {**kwargs["metadata"], TRANSLATED_META: True}
    return field(**kwargs)


def not_translated_field(**kwargs):
    """``dataclasses.field`` excluded from translation."""
    kwargs.setdefault("metadata", {})
    kwargs["metadata"] = {**kwargs["metadata"], TRANSLATED_META: False}
    return field(**kwargs)


# ── C# source scanner ────────────────────────────────────────────

# Strings first so "//" or "{" inside a literal is not mistaken for code
_NOISE_RE = re.compile(
    r'(?P<str>@"(?:[^"]|"")*"|"(?:\\.|[^"\\\n])*"|\'(?:\\.|[^\'\\])\')'
    r'|(?P<comment>//[^\n]*|/\*.*?\*/)'
    r'|(?P<directive>^[ \t]*#[^\n]*)',
    re.DOTALL | re.MULTILINE)
_ATTR_BLOCK_RE = re.compile(r'^\s*\[([^\[\]]*(?:\[[^\[\]]*\][^\[\]]*)*)\]')
_ATTR_RE = re.compile(r'(\w+)\s*(?:\(([^)]*)\))?')
_CLASS_RE = re.compile(
    r'\b(?:class|struct)\s+(\w+)(?:\s*<[^>]*>)?(?:\s*:\s*([\w.]+))?')
_MODIFIERS = {"public", "private", "protected", "internal", "static", "readonly",
              "const", "new", "volatile", "override", "virtual", "abstract", "sealed"}
_DECL_RE = re.compile(r'^([\w.]+(?:\s*<[\w\s,.<>\[\]]*>)?(?:\s*\[\s*,*\s*\])*\??)\s+(\w+)$')


def _split_attributes(chunk: str) -> tuple:
    """Peel leading ``[...]`` blocks off a declaration."""
    attrs = {}
    rest = chunk.strip()
    while True:
        m = _ATTR_BLOCK_RE.match(rest)
        if not m:
            break
        for name, args in _ATTR_RE.findall(m.group(1)):
            if name.endswith("Attribute"):
                name = name[:-len("Attribute")]
            attrs[name] = (args or "").strip()
        rest = rest[m.end():].strip()
    return attrs, rest


def element_type(type_name: str) -> str:
    """``List<Quest>`` -> ``Quest``; ``Quest[]`` -> ``Quest``; maps -> value type."""
    t = type_name.replace(" ", "").rstrip("?")
    while t.endswith("]"):
        t = t[:t.rindex("[")]
    if "<" in t:
        inner = t[t.index("<") + 1:t.rindex(">")]
        depth, parts, cur = 0, [], ""
        for ch in inner:
            if ch == "<":
                depth += 1
            elif ch == ">":
                depth -= 1
            if ch == "," and depth == 0:
                parts.append(cur)
                cur = ""
            else:
                cur += ch
        parts.append(cur)
        return element_type(parts[-1])
    return t.rsplit(".", 1)[-1]


def _parse_member(rest: str) -> Optional[tuple]:
    """Return (type, name) for a field or property declaration head."""
    head = rest.split("=", 1)[0].strip()
    if "(" in head or not head:
        return None
    words = head.split()
    while words and words[0] in _MODIFIERS:
        words.pop(0)
    m = _DECL_RE.match(" ".join(words))
    if not m:
        return None
    return m.group(1), m.group(2)


def _is_recursive(args: str) -> bool:
    return args.replace(" ", "").lower() not in ("false", "recursivetranslation:false")


def scan_csharp(text: str) -> list:
    """Extract class schemas from C# source without a full parser.

    Handles class/struct declarations (nested too), attributes stacked on
    previous lines, field declarations with initializers and
    auto-properties.
    """
    text = _NOISE_RE.sub(lambda m: '""' if m.group("str") else " ", text)
    schemas = []
    stack = []  # ClassSchema for class blocks, None for any other block
    chunk_start = 0

    for m in re.finditer(r'[{};]', text):
        chunk = text[chunk_start:m.start()]
        chunk_start = m.end()
        delim = m.group()
        current = stack[-1] if stack and stack[-1] is not None else None

        if delim == "}":
            if stack:
                stack.pop()
            continue

        attrs, rest = _split_attributes(chunk)
        if delim == "{":
            cm = _CLASS_RE.search(rest)
            if cm and "(" not in rest[:cm.start()] and "=" not in rest[:cm.start()]:
                schema = ClassSchema(
                    name=cm.group(1),
                    translate_all="Translated" in attrs,
                    recursive=_is_recursive(attrs.get("Translated", "")),
                    excluded="NotTranslated" in attrs,
                    base=cm.group(2).rsplit(".", 1)[-1] if cm.group(2) else None,
                )
                schemas.append(schema)
                stack.append(schema)
                continue
            if current is not None:
                member = _parse_member(rest)
                if member:
                    _add_member(current, attrs, *member)
            stack.append(None)
        elif current is not None:
            member = _parse_member(rest)
            if member:
                _add_member(current, attrs, *member)
    return schemas


def _add_member(schema: ClassSchema, attrs: dict, type_name: str, name: str):
    if "NotTranslated" in attrs:
        schema.excluded_fields.add(name)
    elif "Translated" in attrs:
        schema.translated_fields.add(name)
    elem = element_type(type_name)
    if elem and elem != "string":
        schema.field_types[name] = elem
