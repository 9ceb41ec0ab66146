import unittest

from localizer.deepl_client import DeepLClient
from localizer.project_model import TranslationMetadata
from localizer.translation_data import TranslationData
from localizer.translation_engine import TranslationWorker, translate_key


class FakeClient(DeepLClient):
    """Prefixes every text with the target code instead of calling DeepL."""

    def __init__(self, fail_codes=()):
        super().__init__("key")
        self.calls = []
        self.fail_codes = set(fail_codes)

    def translate_batch(self, texts, target_language, context=""):
        self.calls.append((list(texts), target_language, context))
        if target_language in self.fail_codes:
            raise ConnectionError("DeepL API error: down")
        return [f"{target_language}:{t}" for t in texts]


def make_store():
    data = TranslationData("English", ["German", "Austrian German", "French"])
    for key in ("Hello", "Bye", "{count:p:One coin|{} coins}", "Back|menu button"):
        data.add_key(key)
    data.set_translation("Bye", "German", "Tschüss")
    return data


class TranslationWorkerTests(unittest.TestCase):

    def setUp(self):
        self.data = make_store()
        self.meta = TranslationMetadata(custom_language_mappings={"Austrian German": "DE"})
        self.client = FakeClient()
        self.client.custom_mappings = self.meta.custom_language_mappings

    def test_fills_only_empty_translations(self):
        stats = TranslationWorker(self.client, self.data, self.meta, ["German"]).run()
        self.assertEqual(stats, {"translated": 3, "failed": 0, "batches": 1})
        self.assertEqual(self.data.get_translation("Bye", "German"), "Tschüss")
        self.assertEqual(self.data.get_translation("Hello", "German"), "DE:Hello")

    def test_placeholders_are_protected(self):
        TranslationWorker(self.client, self.data, self.meta, ["French"]).run()
        sent = self.client.calls[0][0]
        self.assertNotIn("{count:p:One coin|{} coins}", sent)
        self.assertIn("###PH0###", sent)
        self.assertEqual(self.data.get_translation("{count:p:One coin|{} coins}", "French"),
                         "FR:{count:p:One coin|{} coins}")

    def test_disambiguation_suffix_not_sent(self):
        TranslationWorker(self.client, self.data, self.meta, ["French"]).run()
        self.assertIn("Back", self.client.calls[0][0])
        self.assertEqual(self.data.get_translation("Back|menu button", "French"), "FR:Back")

    def test_languages_sharing_a_code_share_requests(self):
        TranslationWorker(self.client, self.data, self.meta, ["German", "Austrian German"]).run()
        self.assertEqual([code for _texts, code, _ctx in self.client.calls], ["DE"])
        self.assertEqual(self.data.get_translation("Bye", "Austrian German"), "DE:Bye")
        self.assertEqual(self.data.get_translation("Bye", "German"), "Tschüss")

    def test_batches_grouped_by_context(self):
        self.meta.update_context("Hello", "Manual", "Greeting")
        worker = TranslationWorker(self.client, self.data, self.meta, ["French"], batch_size=2)
        stats = worker.run()
        contexts = sorted(ctx for _texts, _code, ctx in self.client.calls)
        self.assertEqual(contexts, ["", "", "Manual: Greeting"])
        self.assertEqual(stats["batches"], 3)
        self.assertTrue(all(len(texts) <= 2 for texts, _c, _x in self.client.calls))

    def test_context_can_be_disabled(self):
        self.meta.update_context("Hello", "Manual", "Greeting")
        TranslationWorker(self.client, self.data, self.meta, ["French"], use_context=False).run()
        self.assertEqual({ctx for _t, _c, ctx in self.client.calls}, {""})

    def test_failed_batch_is_reported_and_others_continue(self):
        client = FakeClient(fail_codes={"FR"})
        errors, done = [], []
        worker = TranslationWorker(client, self.data, self.meta, ["French", "German"])
        worker.on_error = lambda keys, message: errors.append((keys, message))
        worker.on_entry_done = lambda key, lang, text: done.append((key, lang))
        with self.assertLogs("localizer.translation_engine", level="ERROR"):
            stats = worker.run()
        self.assertEqual(stats["failed"], 4)
        self.assertEqual(stats["translated"], 3)
        self.assertEqual(len(errors), 1)
        self.assertTrue(all(lang == "German" for _key, lang in done))
        self.assertEqual(self.data.get_translation("Hello", "French"), "")

    def test_cancel_stops_before_next_batch(self):
        worker = TranslationWorker(self.client, self.data, self.meta, ["French"], batch_size=1)
        worker.on_progress = lambda done, total: worker.cancel()
        stats = worker.run()
        self.assertEqual(stats["batches"], 1)
        self.assertTrue(worker.cancelled)

    def test_unknown_language_is_reported(self):
        self.data.add_language("Elvish")
        errors = []
        worker = TranslationWorker(self.client, self.data, self.meta, ["Elvish"])
        worker.on_error = lambda keys, message: errors.append(message)
        with self.assertLogs("localizer.translation_engine", level="ERROR"):
            stats = worker.run()
        self.assertEqual(stats["translated"], 0)
        self.assertIn("Elvish", errors[0])

    def test_progress_and_finished_callbacks(self):
        progress, finished = [], []
        worker = TranslationWorker(self.client, self.data, self.meta, ["French"], batch_size=3)
        worker.on_progress = lambda done, total: progress.append((done, total))
        worker.on_finished = finished.append
        worker.run()
        self.assertEqual(progress, [(3, 4), (4, 4)])
        self.assertEqual(finished[0]["translated"], 4)


class TranslateKeyTests(unittest.TestCase):

    def test_translate_single_key(self):
        data = make_store()
        written = translate_key(FakeClient(), data, "Bye", ["German", "French"])
        self.assertEqual(written, {"French": "FR:Bye"})
        self.assertEqual(data.get_translation("Bye", "German"), "Tschüss")

    def test_overwrite(self):
        data = make_store()
        written = translate_key(FakeClient(), data, "Bye", ["German"], overwrite=True)
        self.assertEqual(written, {"German": "DE:Bye"})


if __name__ == "__main__":
    unittest.main()
