import unittest

from localizer.translation_data import TranslationData
from localizer.translation_manager import TranslationManager


def make_store():
    data = TranslationData("English", ["German", "French"])
    for key in ("Hello", "Hello!", "Back|menu button", "Back|go back", "{count:p:One coin|{} coins}"):
        data.add_key(key)
    data.set_translation("Hello", "German", "Hallo")
    data.set_translation("Back|menu button", "German", "Zurück")
    data.set_translation("{count:p:One coin|{} coins}", "German", "{count:p:Eine Münze|{} Münzen}")
    data.set_group_status(["Hello", "Hello!"], "Hello")
    return data


class TranslationManagerTests(unittest.TestCase):

    def setUp(self):
        self.manager = TranslationManager(make_store())

    def test_default_language_strips_disambiguation(self):
        self.assertEqual(self.manager.translate("Back|menu button"), "Back")
        self.assertEqual(self.manager.translate("Hello"), "Hello")

    def test_translate_in_current_language(self):
        self.manager.change_language("German")
        self.assertEqual(self.manager.translate("Hello"), "Hallo")
        self.assertEqual(self.manager.translate("Back|menu button"), "Zurück")

    def test_missing_translation_falls_back_to_base_text(self):
        self.manager.change_language("German")
        self.assertEqual(self.manager.translate("Back|go back"), "Back")
        self.assertEqual(self.manager.translate("Unknown text"), "Unknown text")

    def test_grouped_text_uses_canonical_translation(self):
        self.manager.change_language("German")
        self.assertEqual(self.manager.translate("Hello!"), "Hallo")

    def test_empty_text(self):
        self.assertEqual(self.manager.translate(""), "")

    def test_unsupported_language_is_ignored(self):
        with self.assertLogs("localizer.translation_manager", level="ERROR"):
            self.assertFalse(self.manager.change_language("Klingon"))
        self.assertEqual(self.manager.current_language, "English")

    def test_listeners_notified_on_change(self):
        seen = []
        self.manager.add_listener(seen.append)
        self.manager.change_language("German")
        self.manager.change_language("German")
        self.manager.change_language("French")
        self.manager.remove_listener(seen.append)
        self.manager.change_language("English")
        self.assertEqual(seen, ["German", "French"])

    def test_translate_smart(self):
        self.manager.change_language("German")
        text = "{count:p:One coin|{} coins}"
        self.assertEqual(self.manager.translate_smart(text, {"count": 1}), "Eine Münze")
        self.assertEqual(self.manager.translate_smart(text, {"count": 4}), "4 Münzen")
        self.manager.change_language("French")
        self.assertEqual(self.manager.translate_smart(text, {"count": 4}), "4 coins")

    def test_initial_language(self):
        manager = TranslationManager(make_store(), "German")
        self.assertEqual(manager.current_language, "German")
        self.assertEqual(manager.translate("Hello"), "Hallo")


if __name__ == "__main__":
    unittest.main()
