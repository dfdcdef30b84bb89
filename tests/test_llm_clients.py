"""Tests for the Gemini and Ollama ranking backends."""
import unittest
from unittest.mock import patch, MagicMock

import httpx

from coordinator.ranking.gemini import GeminiClient
from coordinator.ranking.ollama import OllamaClient


def _mock_client(mock_client_cls, response=None, side_effect=None):
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client_cls.return_value = mock_client
    return mock_client


class TestGeminiClient(unittest.TestCase):
    def test_no_api_key_returns_error(self):
        client = GeminiClient(api_key="")
        result = client.generate("Hello")
        self.assertFalse(result.ok)
        self.assertIn("GEMINI_API_KEY", result.error)

    def test_available_property(self):
        self.assertTrue(GeminiClient(api_key="test-key").available)
        self.assertFalse(GeminiClient(api_key="").available)

    @patch("coordinator.ranking.gemini.httpx.Client")
    def test_successful_generation(self, mock_client_cls):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {
            "candidates": [{
                "content": {
                    "parts": [{"text": '{"targetServices": []}'}]
                }
            }],
            "usageMetadata": {
                "promptTokenCount": 5,
                "candidatesTokenCount": 3,
                "totalTokenCount": 8,
            }
        }
        mock_client = _mock_client(mock_client_cls, mock_response)

        client = GeminiClient(api_key="test-key")
        result = client.generate("Route this", system="router", timeout=2.0)

        self.assertTrue(result.ok)
        self.assertEqual(result.text, '{"targetServices": []}')
        self.assertEqual(result.usage["total_tokens"], 8)
        mock_client_cls.assert_called_once_with(timeout=2.0)
        _, kwargs = mock_client.post.call_args
        self.assertEqual(kwargs["headers"]["x-goog-api-key"], "test-key")
        self.assertEqual(kwargs["json"]["systemInstruction"]["parts"][0]["text"], "router")
        self.assertIn("gemini-2.5-flash", mock_client.post.call_args.args[0])

    @patch("coordinator.ranking.gemini.httpx.Client")
    def test_http_error(self, mock_client_cls):
        mock_response = MagicMock()
        mock_response.status_code = 401
        mock_response.text = "Unauthorized"
        _mock_client(mock_client_cls, mock_response)

        result = GeminiClient(api_key="bad-key").generate("test")

        self.assertFalse(result.ok)
        self.assertIn("401", result.error)

    @patch("coordinator.ranking.gemini.httpx.Client")
    def test_no_candidates(self, mock_client_cls):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = {"candidates": []}
        _mock_client(mock_client_cls, mock_response)

        result = GeminiClient(api_key="test-key").generate("test")

        self.assertFalse(result.ok)
        self.assertIn("No candidates", result.error)

    @patch("coordinator.ranking.gemini.httpx.Client")
    def test_timeout(self, mock_client_cls):
        _mock_client(mock_client_cls, side_effect=httpx.ReadTimeout("slow"))

        result = GeminiClient(api_key="test-key").generate("test", timeout=1.0)

        self.assertFalse(result.ok)
        self.assertTrue(result.timed_out)
        self.assertIn("timeout", result.error)


class TestOllamaClient(unittest.TestCase):
    @patch("coordinator.ranking.ollama.httpx.Client")
    def test_generate_requests_json_format(self, mock_client_cls):
        mock_response = MagicMock()
        mock_response.json.return_value = {"response": '{"targetServices": []}'}
        mock_client = _mock_client(mock_client_cls, mock_response)

        result = OllamaClient(model="qwen2.5:7b").generate("prompt", system="router")

        self.assertTrue(result.ok)
        self.assertEqual(result.text, '{"targetServices": []}')
        payload = mock_client.post.call_args.kwargs["json"]
        self.assertEqual(payload["format"], "json")
        self.assertEqual(payload["model"], "qwen2.5:7b")
        self.assertEqual(payload["system"], "router")
        self.assertFalse(payload["stream"])

    @patch("coordinator.ranking.ollama.httpx.Client")
    def test_generate_timeout(self, mock_client_cls):
        _mock_client(mock_client_cls, side_effect=httpx.ReadTimeout("slow"))

        result = OllamaClient().generate("prompt", timeout=0.5)

        self.assertFalse(result.ok)
        self.assertTrue(result.timed_out)

    @patch("coordinator.ranking.ollama.httpx.Client")
    def test_generate_connection_error(self, mock_client_cls):
        _mock_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))

        result = OllamaClient().generate("prompt")

        self.assertFalse(result.ok)
        self.assertFalse(result.timed_out)
        self.assertIn("refused", result.error)


if __name__ == "__main__":
    unittest.main()
