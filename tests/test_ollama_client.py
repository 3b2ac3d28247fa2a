"""
Unit tests for the Ollama HTTP client.
Tests OllamaClient.generate() response handling and error mapping.
"""
import unittest
import json
import urllib.error
from io import BytesIO
from unittest.mock import Mock, patch, MagicMock

from concierge.brain.ollama_client import OllamaClient


def _response(payload):
    mock_response = MagicMock()
    mock_response.__enter__ = Mock(return_value=mock_response)
    mock_response.__exit__ = Mock(return_value=False)
    mock_response.read = Mock(return_value=payload)
    return mock_response


class TestGenerate(unittest.TestCase):
    """Test OllamaClient.generate()."""

    def setUp(self):
        self.client = OllamaClient(base_url="http://localhost:11434/", timeout=10, model="llama3.1:latest", options={})

    def test_base_url_trailing_slash_removed(self):
        self.assertEqual(self.client.base_url, "http://localhost:11434")

    def test_response_text_is_stripped(self):
        body = json.dumps({"response": "  {\"route\": \"web\"}\n", "eval_count": 5}).encode("utf-8")
        with patch.object(self.client.opener, 'open', return_value=_response(body)) as mock_open:
            text = self.client.complete("route this")

        self.assertEqual(text, '{"route": "web"}')
        request = mock_open.call_args[0][0]
        sent = json.loads(request.data.decode("utf-8"))
        self.assertEqual(sent["model"], "llama3.1:latest")
        self.assertFalse(sent["stream"])
        self.assertTrue(request.full_url.endswith("/api/generate"))

    def test_missing_response_field(self):
        with patch.object(self.client.opener, 'open', return_value=_response(b'{"done": true}')):
            self.assertEqual(self.client.generate("x", "llama3.1:latest"), "")

    def test_invalid_json(self):
        with patch.object(self.client.opener, 'open', return_value=_response(b'not json')):
            with self.assertRaises(ValueError):
                self.client.generate("x", "llama3.1:latest")

    def test_model_not_found(self):
        error = urllib.error.HTTPError(
            "http://localhost:11434/api/generate", 404, "Not Found", {}, BytesIO(b'{"error":"model not found"}')
        )
        with patch.object(self.client.opener, 'open', side_effect=error):
            with self.assertRaises(ValueError) as ctx:
                self.client.generate("x", "missing-model")
        self.assertIn("ollama pull missing-model", str(ctx.exception))

    def test_server_error(self):
        error = urllib.error.HTTPError(
            "http://localhost:11434/api/generate", 500, "Server Error", {}, BytesIO(b'oops')
        )
        with patch.object(self.client.opener, 'open', side_effect=error):
            with self.assertRaises(ConnectionError):
                self.client.generate("x", "llama3.1:latest")

    def test_connection_refused(self):
        error = urllib.error.URLError("[Errno 111] Connection refused")
        with patch.object(self.client.opener, 'open', side_effect=error):
            with self.assertRaises(ConnectionError) as ctx:
                self.client.generate("x", "llama3.1:latest")
        self.assertIn("ollama serve", str(ctx.exception))


class TestPing(unittest.TestCase):
    """Test OllamaClient.ping()."""

    def setUp(self):
        self.client = OllamaClient(base_url="http://localhost:11434", timeout=10, model="m", options={})

    def test_ping_ok(self):
        body = json.dumps({"models": [{"name": "llama3.1:latest"}]}).encode("utf-8")
        with patch.object(self.client.opener, 'open', return_value=_response(body)):
            self.assertTrue(self.client.ping())

    def test_ping_unreachable(self):
        with patch.object(self.client.opener, 'open', side_effect=urllib.error.URLError("down")):
            self.assertFalse(self.client.ping())


if __name__ == '__main__':
    unittest.main()
