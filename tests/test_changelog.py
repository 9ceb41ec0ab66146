import datetime
import os
import tempfile
import unittest

from localizer.changelog import (
    get_latest_released, get_latest_unreleased, parse_changelog, parse_changelog_text,
)

CHANGELOG = """\
# Changelog

All notable changes to this project will be documented in this file.

## [Unreleased]

### Added
- DeepL context per category
- Similarity review

## [1.4.0] - 2024-05-02

### Added
- XML external files

### Fixed
- Plural placeholders with pipes
  continuation lines are ignored

## [1.3.1] - 2024-03-18

### Changed
- Faster scene scanning
"""


class ParseChangelogTests(unittest.TestCase):

    def test_versions_and_dates(self):
        entries = parse_changelog_text(CHANGELOG)
        self.assertEqual([e.version for e in entries], ["Unreleased", "1.4.0", "1.3.1"])
        self.assertEqual(entries[1].date, "2024-05-02")
        self.assertEqual(entries[2].date, "2024-03-18")

    def test_missing_date_defaults_to_today(self):
        entries = parse_changelog_text(CHANGELOG)
        self.assertTrue(entries[0].is_unreleased)
        self.assertEqual(entries[0].date, datetime.date.today().isoformat())

    def test_categories_and_bullets(self):
        entry = parse_changelog_text(CHANGELOG)[1]
        self.assertEqual(entry.changes, {
            "Added": ["XML external files"],
            "Fixed": ["Plural placeholders with pipes"],
        })
        self.assertEqual(entry.all_changes(),
                         ["Added: XML external files", "Fixed: Plural placeholders with pipes"])

    def test_heading_must_start_the_line(self):
        entries = parse_changelog_text("Intro mentioning ## [9.9.9] inline\n## [1.0.0] - 2023-01-01\n")
        self.assertEqual([e.version for e in entries], ["1.0.0"])

    def test_bullets_before_any_version_are_ignored(self):
        self.assertEqual(parse_changelog_text("### Added\n- orphan\n"), [])


class ChangelogFileTests(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "CHANGELOG.md")
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(CHANGELOG)

    def tearDown(self):
        self._tmp.cleanup()

    def test_latest_entries(self):
        self.assertEqual(get_latest_unreleased(self.path).changes["Added"],
                         ["DeepL context per category", "Similarity review"])
        self.assertEqual(get_latest_released(self.path).version, "1.4.0")

    def test_no_unreleased_section(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("## [2.0.0] - 2024-06-01\n### Removed\n- Legacy importer\n")
        self.assertIsNone(get_latest_unreleased(self.path))
        self.assertEqual(get_latest_released(self.path).all_changes(),
                         ["Removed: Legacy importer"])

    def test_missing_file(self):
        missing = os.path.join(self._tmp.name, "nope.md")
        with self.assertLogs("localizer.changelog", level="ERROR"):
            self.assertEqual(parse_changelog(missing), [])


if __name__ == "__main__":
    unittest.main()
