import os
import tempfile
import unittest

from localizer import csv_handler
from localizer.project_model import TextSourceInfo, TextSourceType, TranslationMetadata
from localizer.translation_data import TranslationData


def make_store():
    data = TranslationData("English", ["German"])
    data.add_key("Hello")
    data.add_key('Say "hi", friend')
    data.set_translation("Hello", "German", "Hallo")
    data.set_translation('Say "hi", friend', "German", 'Sag "hallo", Freund')
    return data


def read(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


class EscapeTests(unittest.TestCase):

    def test_plain_field_unquoted(self):
        self.assertEqual(csv_handler.escape_field("Hello"), "Hello")

    def test_comma_quoted(self):
        self.assertEqual(csv_handler.escape_field("a,b"), '"a,b"')

    def test_quotes_doubled(self):
        self.assertEqual(csv_handler.escape_field('say "hi"'), '"say ""hi"""')

    def test_newline_quoted(self):
        self.assertEqual(csv_handler.escape_field("line1\nline2"), '"line1\nline2"')

    def test_carriage_return_quoted(self):
        self.assertEqual(csv_handler.escape_field("line1\rline2"), '"line1\rline2"')

    def test_empty_and_none(self):
        self.assertEqual(csv_handler.escape_field(""), "")
        self.assertEqual(csv_handler.escape_field(None), "")


class ExportImportTests(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        self.path = os.path.join(self.tmp, "translations.csv")

    def tearDown(self):
        self._tmp.cleanup()

    def test_export_format(self):
        count = csv_handler.export_current_keys(self.path, make_store())
        self.assertEqual(count, 2)
        self.assertEqual(read(self.path),
                         'English,German\n'
                         'Hello,Hallo\n'
                         '"Say ""hi"", friend","Sag ""hallo"", Freund"\n')

    def test_round_trip(self):
        original = make_store()
        original.add_key("Multi\nline")
        original.set_translation("Multi\nline", "German", "Mehr,\nzeilig")
        csv_handler.export_current_keys(self.path, original)

        loaded = TranslationData("English")
        stats = csv_handler.import_csv(self.path, loaded)
        self.assertEqual(stats, {"keys": 3, "languages": 1, "skipped": 0})
        self.assertEqual(loaded.all_keys, original.all_keys)
        for key in original.all_keys:
            self.assertEqual(loaded.get_translation(key, "German"),
                             original.get_translation(key, "German"))

    def test_round_trip_with_carriage_returns(self):
        original = make_store()
        original.add_key("Line1\rLine2")
        original.set_translation("Line1\rLine2", "German", "Zeile1\r\nZeile2")
        csv_handler.export_current_keys(self.path, original)

        loaded = TranslationData("English")
        stats = csv_handler.import_csv(self.path, loaded)
        self.assertEqual(stats["keys"], 3)
        self.assertEqual(loaded.all_keys, original.all_keys)
        self.assertEqual(loaded.get_translation("Line1\rLine2", "German"), "Zeile1\r\nZeile2")

    def test_import_requires_default_language_column(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("Key,German\nHello,Hallo\n")
        with self.assertRaises(ValueError):
            csv_handler.import_csv(self.path, TranslationData("English"))

    def test_import_pads_short_rows_and_skips_blank_keys(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("English,German,French\nHello,Hallo\n,Leer,Vide\nBye,Tschüss,Salut\n")
        data = TranslationData("English")
        with self.assertLogs("localizer.csv_handler", level="WARNING"):
            stats = csv_handler.import_csv(self.path, data)
        self.assertEqual(stats, {"keys": 2, "languages": 2, "skipped": 1})
        self.assertEqual(data.get_translation("Hello", "French"), "")
        self.assertEqual(data.get_translation("Bye", "French"), "Salut")

    def test_import_missing_file(self):
        data = TranslationData("English")
        with self.assertLogs("localizer.csv_handler", level="ERROR"):
            stats = csv_handler.import_csv(os.path.join(self.tmp, "nope.csv"), data)
        self.assertEqual(stats["keys"], 0)

    def test_extract_to_csv_reuses_store_translations(self):
        count = csv_handler.extract_to_csv(self.path, {"Hello", "New text"}, make_store())
        self.assertEqual(count, 2)
        self.assertEqual(read(self.path), "English,German\nHello,Hallo\nNew text,\n")

    def test_update_existing_csv_prefers_file_values(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("English,German\nHello,Servus\nGone,Weg\nBye,\n")
        data = make_store()
        data.add_key("Bye")
        data.set_translation("Bye", "German", "Tschüss")
        data.add_language("French")
        data.set_translation("Hello", "French", "Bonjour")

        count = csv_handler.update_existing_csv(self.path, {"Hello", "Bye", "Play"}, data)
        self.assertEqual(count, 3)
        self.assertEqual(read(self.path),
                         "English,German,French\n"
                         "Bye,Tschüss,\n"
                         "Hello,Servus,Bonjour\n"
                         "Play,,\n")


class ReportTests(unittest.TestCase):

    def test_report_lists_unused_and_missing_keys(self):
        data = make_store()
        meta = TranslationMetadata()
        meta.add_source("Hello", TextSourceInfo(TextSourceType.SCENE, "Assets/Main.unity"))
        meta.add_source("Play", TextSourceInfo(TextSourceType.PREFAB, "Assets/Menu.prefab"))

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "report.txt")
            csv_handler.generate_report(path, data, {"Play"}, meta)
            text = read(path)

        self.assertIn("Total Keys: 2\n", text)
        self.assertIn("Unused Keys: 2\n", text)
        self.assertIn("Missing Keys: 1\n", text)
        self.assertIn("German: 100.0% (2/2)", text)
        self.assertIn("Last known locations:\n    - Scene in Assets/Main.unity", text)
        self.assertIn("Found in:\n    - Prefab in Assets/Menu.prefab", text)


if __name__ == "__main__":
    unittest.main()
