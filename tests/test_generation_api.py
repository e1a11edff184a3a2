import json
import os
import unittest
from unittest.mock import patch

import requests

from debatebattle.exceptions import GenerationServiceError, QuotaExceededError
from debatebattle.generation.api import GenerationClient, extract_json


class DummyResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else json.dumps(json_data)
        self.content = self.text.encode()

    def json(self):
        if self._json is None:
            raise ValueError("no JSON")
        return self._json


class DummySession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "json": json})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def completion(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestExtractJson(unittest.TestCase):
    def test_plain_object(self):
        self.assertEqual(extract_json('{"a": 1}'), {"a": 1})

    def test_object_wrapped_in_prose(self):
        text = 'Here you go:\n```json\n{"title": "x", "n": [1, 2]}\n```'
        self.assertEqual(extract_json(text), {"title": "x", "n": [1, 2]})

    def test_rejects_text_without_object(self):
        with self.assertRaises(GenerationServiceError):
            extract_json("no json here")

    def test_rejects_arrays(self):
        with self.assertRaises(GenerationServiceError):
            extract_json("[1, 2]")


@patch("debatebattle.generation.api.load_dotenv")
class TestGenerationClient(unittest.TestCase):
    def make_client(self, response):
        session = DummySession(response)
        client = GenerationClient(
            api_key="key", model="test-model", base_url="https://gen.example.com", session=session
        )
        return client, session

    def test_requires_api_key(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                GenerationClient()

    def test_generate_text_posts_prompt(self, mock_load_dotenv):
        client, session = self.make_client(DummyResponse(json_data=completion("  0.42\n")))
        self.assertEqual(client.generate_text("compare", temperature=0.1), "0.42")
        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(
            call["url"], "https://gen.example.com/v1beta/models/test-model:generateContent"
        )
        self.assertEqual(call["headers"]["x-goog-api-key"], "key")
        self.assertEqual(call["json"]["contents"][0]["parts"][0]["text"], "compare")
        self.assertEqual(call["json"]["generationConfig"], {"temperature": 0.1})

    def test_generate_structured_appends_schema(self, mock_load_dotenv):
        payload = completion('{"isAppropriate": true}')
        client, session = self.make_client(DummyResponse(json_data=payload))
        result = client.generate_structured("moderate", {"type": "object"})
        self.assertEqual(result, {"isAppropriate": True})
        sent = session.calls[0]["json"]
        self.assertIn('"type": "object"', sent["contents"][0]["parts"][0]["text"])
        self.assertEqual(sent["generationConfig"]["responseMimeType"], "application/json")

    def test_rate_limit_raises_quota_error(self, mock_load_dotenv):
        client, _ = self.make_client(DummyResponse(status_code=429, text="Too Many Requests"))
        with self.assertRaises(QuotaExceededError) as ctx:
            client.generate_text("hi")
        self.assertEqual(ctx.exception.status_code, 429)

    def test_resource_exhausted_body_raises_quota_error(self, mock_load_dotenv):
        response = DummyResponse(status_code=403, text='{"status": "RESOURCE_EXHAUSTED"}')
        client, _ = self.make_client(response)
        with self.assertRaises(QuotaExceededError):
            client.generate_text("hi")

    def test_server_error(self, mock_load_dotenv):
        client, _ = self.make_client(DummyResponse(status_code=500, text="boom"))
        with self.assertRaises(GenerationServiceError) as ctx:
            client.generate_text("hi")
        self.assertNotIsInstance(ctx.exception, QuotaExceededError)
        self.assertEqual(ctx.exception.status_code, 500)

    def test_network_error(self, mock_load_dotenv):
        client, _ = self.make_client(requests.ConnectionError("refused"))
        with self.assertRaises(GenerationServiceError):
            client.generate_text("hi")

    def test_blocked_prompt_has_no_candidates(self, mock_load_dotenv):
        body = {"promptFeedback": {"blockReason": "SAFETY"}}
        client, _ = self.make_client(DummyResponse(json_data=body))
        with self.assertRaises(GenerationServiceError) as ctx:
            client.generate_text("hi")
        self.assertIn("SAFETY", str(ctx.exception))

    def test_empty_completion(self, mock_load_dotenv):
        client, _ = self.make_client(DummyResponse(json_data=completion("   ")))
        with self.assertRaises(GenerationServiceError):
            client.generate_text("hi")


if __name__ == "__main__":
    unittest.main()
