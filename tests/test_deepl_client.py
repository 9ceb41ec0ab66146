import unittest
from unittest import mock

import requests

from localizer import deepl_client
from localizer.deepl_client import DeepLClient, get_language_code


def response(status=200, payload=None, text=""):
    r = mock.Mock()
    r.status_code = status
    r.json.return_value = payload if payload is not None else {}
    r.text = text
    return r


def translations(*texts):
    return response(payload={"translations": [{"text": t} for t in texts]})


class LanguageCodeTests(unittest.TestCase):

    def test_default_mapping(self):
        self.assertEqual(get_language_code("German"), "DE")
        self.assertEqual(get_language_code("Portuguese (Brazil)"), "PT-BR")

    def test_regional_fallback(self):
        self.assertEqual(get_language_code("French (Canada)"), "FR")

    def test_custom_mapping_wins(self):
        self.assertEqual(get_language_code("Portuguese", {"Portuguese": "PT-PT"}), "PT-PT")

    def test_unknown_language(self):
        self.assertIsNone(get_language_code("Elvish"))
        with self.assertRaises(ValueError):
            DeepLClient("key").language_code("Elvish")


@mock.patch("localizer.deepl_client.requests.post")
class TranslateBatchTests(unittest.TestCase):

    def setUp(self):
        self.client = DeepLClient("secret:fx", formality="more")
        self.client._sleep = mock.Mock()

    def test_request_payload(self, post):
        post.return_value = translations("Hallo", "Tschüss")
        result = self.client.translate_batch(["Hello", "Bye"], "German", context="Menu")
        self.assertEqual(result, ["Hallo", "Tschüss"])

        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        self.assertEqual(url, "https://api-free.deepl.com/v2/translate")
        self.assertEqual(kwargs["headers"], {"Authorization": "DeepL-Auth-Key secret:fx"})
        self.assertEqual(kwargs["json"], {
            "text": ["Hello", "Bye"],
            "target_lang": "DE",
            "preserve_formatting": True,
            "context": "Menu",
            "formality": "more",
        })

    def test_formality_only_for_supported_languages(self, post):
        post.return_value = translations("Hei")
        self.client.translate_batch(["Hello"], "Finnish")
        self.assertNotIn("formality", post.call_args.kwargs["json"])
        self.assertNotIn("context", post.call_args.kwargs["json"])

    def test_pro_endpoint(self, post):
        post.return_value = translations("Hallo")
        DeepLClient("secret", pro=True).translate_batch(["Hello"], "DE")
        self.assertEqual(post.call_args.args[0], "https://api.deepl.com/v2/translate")

    def test_rate_limit_backoff(self, post):
        post.side_effect = [response(429), response(429), translations("Hallo")]
        with self.assertLogs("localizer.deepl_client", level="WARNING"):
            self.assertEqual(self.client.translate_batch(["Hello"], "German"), ["Hallo"])
        self.assertEqual([c.args[0] for c in self.client._sleep.call_args_list], [1.0, 2.0])

    def test_rate_limit_gives_up(self, post):
        post.return_value = response(429)
        with self.assertLogs("localizer.deepl_client", level="WARNING"):
            with self.assertRaises(ConnectionError):
                self.client.translate_batch(["Hello"], "German")
        self.assertEqual(post.call_count, deepl_client.MAX_RETRIES + 1)

    def test_http_error(self, post):
        post.return_value = response(403, text="Forbidden")
        with self.assertRaises(ConnectionError):
            self.client.translate_batch(["Hello"], "German")

    def test_network_error_wrapped(self, post):
        post.side_effect = requests.ConnectionError("down")
        with self.assertRaises(ConnectionError):
            self.client.translate_batch(["Hello"], "German")

    def test_malformed_response(self, post):
        post.return_value = response(payload={"unexpected": True})
        with self.assertRaises(ValueError):
            self.client.translate_batch(["Hello"], "German")

    def test_batch_size_limit(self, post):
        with self.assertRaises(ValueError):
            self.client.translate_batch(["x"] * (deepl_client.MAX_BATCH_SIZE + 1), "German")
        post.assert_not_called()

    def test_empty_batch(self, post):
        self.assertEqual(self.client.translate_batch([], "German"), [])
        post.assert_not_called()


@mock.patch("localizer.deepl_client.requests.get")
class AvailabilityTests(unittest.TestCase):

    def test_available(self, get):
        get.return_value = response(200)
        self.assertTrue(DeepLClient("key").is_available())
        self.assertEqual(get.call_args.args[0], "https://api-free.deepl.com/v2/usage")

    def test_rejected_key(self, get):
        get.return_value = response(403)
        self.assertFalse(DeepLClient("key").is_available())

    def test_unreachable(self, get):
        get.side_effect = requests.ConnectionError("down")
        self.assertFalse(DeepLClient("key").is_available())

    def test_no_key(self, get):
        self.assertFalse(DeepLClient("").is_available())
        get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
