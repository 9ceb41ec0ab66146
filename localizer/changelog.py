"""Parser for Keep-a-Changelog style CHANGELOG.md files."""

import datetime
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

log = logging.getLogger(__name__)

VERSION_RE = re.compile(r'^## \[(.*?)\]( - (\d{4}-\d{2}-\d{2}))?')
CATEGORY_RE = re.compile(r'^### (.+)')
UNRELEASED = "unreleased"


@dataclass
class ChangelogEntry:
    version: str
    date: str
    changes: dict = field(default_factory=dict)   # category -> [change]

    @property
    def is_unreleased(self) -> bool:
        return self.version.lower() == UNRELEASED

    def all_changes(self) -> list:
        """Every change as ``"Category: change"``, in file order."""
        return [f"{category}: {change}"
                for category, items in self.changes.items() for change in items]


def parse_changelog_text(text: str) -> list:
    entries = []
    current: Optional[ChangelogEntry] = None
    category = None
    for line in text.splitlines():
        m = VERSION_RE.match(line)
        if m:
            date = m.group(3) or datetime.date.today().isoformat()
            current = ChangelogEntry(m.group(1), date)
            entries.append(current)
            category = None
            continue

        m = CATEGORY_RE.match(line)
        if m:
            category = m.group(1).strip()
            if current is not None:
                current.changes.setdefault(category, [])
            continue

        if current is not None and category is not None:
            stripped = line.strip()
            if stripped.startswith("- "):
                current.changes[category].append(stripped[2:])
    return entries


def parse_changelog(path: str) -> list:
    """Parse the changelog at *path*; a missing file gives []."""
    if not os.path.isfile(path):
        log.error("Changelog file not found at: %s", path)
        return []
    with open(path, "r", encoding="utf-8-sig") as f:
        return parse_changelog_text(f.read())


def get_latest_unreleased(path: str) -> Optional[ChangelogEntry]:
    return next((e for e in parse_changelog(path) if e.is_unreleased), None)


def get_latest_released(path: str) -> Optional[ChangelogEntry]:
    return next((e for e in parse_changelog(path) if not e.is_unreleased), None)
