"""
HTTP client for the Ollama API with connection reuse.
This is the completion service behind the LLM fallback router, the
sequence planner and the default conversational reply.
"""
import json
import time
import urllib.request
import urllib.error
from typing import Dict, Any, Optional, Protocol

from concierge.core.config import Config
from concierge.core.logger import get_logger


class CompletionClient(Protocol):
    """Anything that turns a prompt into text. Raises on failure."""

    def complete(self, prompt: str) -> str:
        ...


class OllamaClient:
    """Client for the Ollama /api/generate endpoint."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        timeout: int = 30,
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Ollama HTTP client.

        Args:
            base_url: Ollama API base URL (e.g., http://127.0.0.1:11434)
            timeout: Socket timeout for requests in seconds
            model: Model used by complete()
            options: Generation options used by complete()
        """
        self.logger = get_logger()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.model = model or Config.OLLAMA_MODEL
        self.options = options if options is not None else Config.get_ollama_options()

        # Reusable opener so keep-alive connections are shared across requests
        self.opener = urllib.request.build_opener(
            urllib.request.HTTPHandler(debuglevel=0),
            urllib.request.HTTPSHandler(debuglevel=0)
        )

    @classmethod
    def from_config(cls) -> "OllamaClient":
        return cls(base_url=Config.OLLAMA_BASE_URL, timeout=Config.LLM_TIMEOUT, model=Config.OLLAMA_MODEL)

    def ping(self) -> bool:
        """
        Check if the Ollama server is running and accessible.

        Returns:
            True if Ollama is reachable, False otherwise
        """
        try:
            start_time = time.time()
            req = urllib.request.Request(f"{self.base_url}/api/tags", method="GET")
            with self.opener.open(req, timeout=5) as response:
                data = json.loads(response.read().decode('utf-8'))
                models = [m.get("name", "") for m in data.get("models", [])]
                elapsed_ms = int((time.time() - start_time) * 1000)
                self.logger.debug(f"[LLM] Ollama ping successful ({elapsed_ms}ms). Available models: {models}")
                return True
        except (urllib.error.URLError, OSError, ValueError) as e:
            self.logger.debug(f"[LLM] Ollama ping failed: {e}")
            return False

    def complete(self, prompt: str) -> str:
        """Generate with the client's default model and options."""
        return self.generate(prompt, self.model, self.options)

    def generate(
        self,
        prompt: str,
        model: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Generate text from Ollama (non-streaming).

        Args:
            prompt: Input prompt text
            model: Model name to use
            options: Generation options (temperature, top_p, num_ctx, num_predict, etc.)

        Returns:
            Generated text response

        Raises:
            ConnectionError: If Ollama cannot be reached
            ValueError: If the response is invalid or the model is not found
        """
        if options is None:
            options = {}

        start_time = time.time()
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": options
        }
        req = urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode('utf-8'),
            headers={
                'Content-Type': 'application/json',
                'Connection': 'keep-alive'
            },
            method="POST"
        )

        self.logger.debug(f"[LLM] Generating with {model} prompt_chars={len(prompt)}")

        try:
            with self.opener.open(req, timeout=self.timeout) as response:
                response_data = json.loads(response.read().decode('utf-8'))
        except urllib.error.HTTPError as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            error_body = ""
            try:
                error_body = e.read().decode('utf-8')
            except (OSError, UnicodeDecodeError):
                error_body = ""

            self.logger.error(f"[LLM] HTTP {e.code} from Ollama after {elapsed_ms}ms: {error_body}")

            if e.code == 404 or "model" in error_body.lower():
                raise ValueError(f"Model '{model}' not found. Try: ollama pull {model}") from e

            raise ConnectionError(f"Ollama HTTP error: {e.code}") from e

        except urllib.error.URLError as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            self.logger.error(f"[LLM] Connection error after {elapsed_ms}ms: {e}")

            if "Connection refused" in str(e):
                raise ConnectionError(f"Cannot reach Ollama at {self.base_url}. Try: ollama serve") from e
            raise ConnectionError(f"Network error: {e}") from e

        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON from Ollama: {e}") from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        prompt_tokens = response_data.get("prompt_eval_count", 0)
        eval_tokens = response_data.get("eval_count", 0)
        self.logger.debug(
            f"[LLM] Generation completed in {elapsed_ms}ms (prompt_tokens={prompt_tokens}, eval_tokens={eval_tokens})"
        )
        return str(response_data.get("response", "")).strip()
