"""Game Text Localizer, command line front end.

Usage: python main.py <command> <unity-project> [options]
"""

import argparse
import logging
import os
import sys

from localizer import csv_handler
from localizer.changelog import get_latest_released, get_latest_unreleased, parse_changelog
from localizer.deepl_client import DeepLClient
from localizer.extractors import UnityProject
from localizer.project_model import KeyUpdateMode, TranslationMetadata
from localizer.settings import METADATA_FILE, STATE_DIR, Settings
from localizer.similarity import SimilarityChecker, record_groups
from localizer.text_extractor import TextExtractor
from localizer.translation_data import TranslationData
from localizer.translation_engine import TranslationWorker

log = logging.getLogger("localizer")


class Workspace:
    """Settings, key registry and translation store of one Unity project."""

    def __init__(self, project_dir: str, state_dir: str | None = None):
        self.project = UnityProject(project_dir)
        self.state_dir = state_dir or os.path.join(self.project.project_dir, STATE_DIR)
        os.makedirs(self.state_dir, exist_ok=True)
        self.settings = Settings.load(self.state_dir)
        self.metadata = TranslationMetadata.load_state(self.metadata_path)
        self.data = TranslationData.load_state(self.state_dir)
        if not self.data.all_keys and self.data.default_language != self.settings.default_language:
            self.data.update_default_language(self.settings.default_language)

    @property
    def metadata_path(self) -> str:
        return os.path.join(self.state_dir, METADATA_FILE)

    def extractor(self) -> TextExtractor:
        return TextExtractor(self.project, self.metadata, self.settings)

    def save(self):
        self.data.save_state(self.state_dir)
        self.metadata.save_state(self.metadata_path)
        self.settings.save(self.state_dir)


# ── Commands ─────────────────────────────────────────────────────

def cmd_extract(ws: Workspace, args) -> int:
    mode = KeyUpdateMode(args.mode) if args.mode else ws.settings.update_mode
    stats = ws.extractor().run_extraction(ws.data, mode, names=args.only or None)
    if args.csv:
        csv_handler.extract_to_csv(args.csv, ws.data.all_keys, ws.data)
    ws.save()
    print(f"Extracted {stats['extracted']} strings: {stats['new']} new, "
          f"{stats['missing']} missing, {stats['added']} keys added, "
          f"{stats['removed']} removed")
    return 0


def cmd_export_csv(ws: Workspace, args) -> int:
    path = args.csv or ws.settings.csv_path
    if not path:
        log.error("No CSV path given and none configured")
        return 1
    count = csv_handler.export_current_keys(path, ws.data)
    ws.settings.csv_path = path
    ws.settings.save(ws.state_dir)
    print(f"Exported {count} keys to {path}")
    return 0


def cmd_import_csv(ws: Workspace, args) -> int:
    try:
        stats = csv_handler.import_csv(args.csv, ws.data)
    except ValueError as e:
        log.error("%s", e)
        return 1
    ws.save()
    print(f"Imported {stats['keys']} keys in {stats['languages']} languages "
          f"({stats['skipped']} rows skipped)")
    return 0


def cmd_update_csv(ws: Workspace, args) -> int:
    path = args.csv or ws.settings.csv_path
    if not path:
        log.error("No CSV path given and none configured")
        return 1
    extracted = ws.extractor().extract_all_text()
    count = csv_handler.update_existing_csv(path, extracted, ws.data)
    ws.metadata.save_state(ws.metadata_path)
    print(f"Updated {path} with {count} keys")
    return 0


def cmd_similar(ws: Workspace, args) -> int:
    checker = SimilarityChecker.from_settings(ws.settings)
    if args.threshold is not None:
        checker.threshold = args.threshold
    groups = checker.generate_similarity_report(ws.data.all_keys, "translation keys")
    record_groups(ws.metadata, groups)
    ws.metadata.save_state(ws.metadata_path)
    for group in groups:
        selected, pending = ws.data.get_group_status(group.texts)
        print(f"[{group.average_score:.2f}] {group.reason}")
        for text in group.texts:
            marker = "*" if text == (selected or group.selected_text) else " "
            print(f"  {marker} {text}")
        if pending:
            print("    (canonical text not reviewed)")
    print(f"{len(groups)} similarity groups")
    return 0


def cmd_report(ws: Workspace, args) -> int:
    extractor = ws.extractor()
    extracted = extractor.extract_all_text()
    enabled = {e.name: extractor.is_extractor_enabled(e) for e in extractor.extractors}
    csv_handler.generate_report(args.output, ws.data, extracted, ws.metadata,
                                extractor.extractors, enabled)
    ws.metadata.save_state(ws.metadata_path)
    print(f"Report written to {args.output}")
    return 0


def cmd_translate(ws: Workspace, args) -> int:
    api_key = args.api_key or os.environ.get("DEEPL_API_KEY") or ws.settings.deepl_api_key
    if not api_key:
        log.error("No DeepL API key. Use --api-key, DEEPL_API_KEY or the settings file.")
        return 1
    ws.settings.deepl_api_key = api_key
    client = DeepLClient.from_settings(ws.settings, ws.metadata.custom_language_mappings)
    if not client.is_available():
        log.error("DeepL API not reachable or API key rejected")
        return 1

    for language in args.language or []:
        ws.data.add_language(language)
    worker = TranslationWorker(client, ws.data, ws.metadata, languages=args.language or None,
                               use_context=ws.settings.deepl_use_context,
                               batch_size=ws.settings.deepl_batch_size)
    worker.on_progress = lambda done, total: log.info("Translated %d/%d keys", done, total)
    try:
        stats = worker.run()
    except KeyboardInterrupt:
        worker.cancel()
        log.warning("Interrupted, saving partial results")
        stats = {"translated": 0, "failed": 0}
    ws.save()
    print(f"{stats['translated']} keys translated, {stats['failed']} failed")
    return 0 if not stats["failed"] else 2


def cmd_changelog(_ws, args) -> int:
    if args.unreleased:
        entries = [get_latest_unreleased(args.path)]
    elif args.released:
        entries = [get_latest_released(args.path)]
    else:
        entries = parse_changelog(args.path)
    for entry in filter(None, entries):
        print(f"{entry.version} ({entry.date})")
        for change in entry.all_changes():
            print(f"  - {change}")
    return 0


# ── Entry point ──────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="localizer",
                                     description="Extract, review and translate Unity game text.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def project_command(name, func, help_text):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("project", help="Unity project folder")
        p.add_argument("--state-dir", help=f"state folder (default: <project>/{STATE_DIR})")
        p.set_defaults(func=func, needs_project=True)
        return p

    p = project_command("extract", cmd_extract, "extract text and update the keys")
    p.add_argument("--mode", choices=[m.value for m in KeyUpdateMode])
    p.add_argument("--only", nargs="+", metavar="EXTRACTOR", help="run only these extractors")
    p.add_argument("--csv", help="also write the keys to this CSV file")

    p = project_command("export-csv", cmd_export_csv, "write keys and translations to CSV")
    p.add_argument("csv", nargs="?")

    p = project_command("import-csv", cmd_import_csv, "replace the store from a CSV file")
    p.add_argument("csv")

    p = project_command("update-csv", cmd_update_csv, "merge a fresh extraction into a CSV")
    p.add_argument("csv", nargs="?")

    p = project_command("similar", cmd_similar, "list groups of near-duplicate keys")
    p.add_argument("--threshold", type=float)

    p = project_command("report", cmd_report, "write a translation status report")
    p.add_argument("output")

    p = project_command("translate", cmd_translate, "fill missing translations with DeepL")
    p.add_argument("--language", nargs="+", help="target languages (default: all)")
    p.add_argument("--api-key")

    p = sub.add_parser("changelog", help="show changelog entries")
    p.add_argument("path")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--unreleased", action="store_true")
    group.add_argument("--released", action="store_true")
    p.set_defaults(func=cmd_changelog, needs_project=False)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ws = None
    if args.needs_project:
        try:
            ws = Workspace(args.project, args.state_dir)
        except FileNotFoundError as e:
            log.error("%s", e)
            return 1
    return args.func(ws, args)


if __name__ == "__main__":
    sys.exit(main())
