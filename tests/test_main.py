import contextlib
import io
import os
import tempfile
import unittest
from unittest import mock

import main
from localizer.translation_data import TranslationData

PREFAB = """\
%YAML 1.1
%TAG !u! tag:unity3d.com,2011:
--- !u!114 &7
MonoBehaviour:
  m_GameObject: {fileID: 6}
  m_Script: {fileID: 11500000, guid: 5f7201a12d95ffc409449d95f23cf332, type: 3}
  m_Text: Click me
"""


def run(*argv):
    out = io.StringIO()
    with contextlib.redirect_stdout(out):
        code = main.main(list(argv))
    return code, out.getvalue()


class CommandLineTests(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        os.makedirs(os.path.join(self.root, "Assets", "Prefabs"))
        with open(os.path.join(self.root, "Assets", "Prefabs", "Button.prefab"), "w",
                  encoding="utf-8") as f:
            f.write(PREFAB)

    def tearDown(self):
        self._tmp.cleanup()

    def test_extract_then_export(self):
        code, out = run("extract", self.root, "--only", "PrefabTextExtractor")
        self.assertEqual(code, 0)
        self.assertIn("Extracted 1 strings", out)

        state_dir = os.path.join(self.root, "_localization")
        self.assertEqual(TranslationData.load_state(state_dir).all_keys, ["Click me"])

        csv_path = os.path.join(self.root, "keys.csv")
        code, out = run("export-csv", self.root, csv_path)
        self.assertEqual(code, 0)
        self.assertTrue(os.path.isfile(csv_path))

    def test_invalid_setting_does_not_abort_extraction(self):
        state_dir = os.path.join(self.root, "_localization")
        os.makedirs(state_dir)
        with open(os.path.join(state_dir, "_settings.json"), "w", encoding="utf-8") as f:
            f.write('{"similarity_metric": "jaro"}')
        with self.assertLogs("localizer.settings", level="WARNING"):
            code, out = run("extract", self.root, "--only", "PrefabTextExtractor")
        self.assertEqual(code, 0)
        self.assertIn("Extracted 1 strings", out)

    def test_missing_assets_folder(self):
        with tempfile.TemporaryDirectory() as empty:
            with self.assertLogs("localizer", level="ERROR"):
                code, _out = run("extract", empty)
        self.assertEqual(code, 1)

    def test_translate_without_key(self):
        env = dict(os.environ)
        env.pop("DEEPL_API_KEY", None)
        with mock.patch.dict(os.environ, env, clear=True):
            with self.assertLogs("localizer", level="ERROR"):
                code, _out = run("translate", self.root)
        self.assertEqual(code, 1)

    def test_changelog(self):
        path = os.path.join(self.root, "CHANGELOG.md")
        with open(path, "w", encoding="utf-8") as f:
            f.write("## [1.0.0] - 2024-01-05\n### Added\n- First release\n")
        code, out = run("changelog", path, "--released")
        self.assertEqual(code, 0)
        self.assertEqual(out, "1.0.0 (2024-01-05)\n  - Added: First release\n")


if __name__ == "__main__":
    unittest.main()
