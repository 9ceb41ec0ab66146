"""Game-text localization toolkit for Unity projects.

Extracts translatable strings from scenes, prefabs, scriptable objects,
scripts and external data files, keeps a key registry with source
locations and translator context, detects near-duplicate keys and
round-trips per-language translations through CSV.
"""

import re

__version__ = "1.4.0"

# Smart-string placeholders: {name}, {count:plural:one|many}, nested braces allowed
PLACEHOLDER_RE = re.compile(r'\{(?:[^{}]|\{[^{}]*\})+\}')

# "Word|context" disambiguation suffix on a key
DISAMBIGUATION_SEP = "|"
