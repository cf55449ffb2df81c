"""Summary: AI provider abstraction and implementations.

Importance: Centralizes LLM access for portability and auditability.
Alternatives: Call provider SDKs directly in each service.
"""

from __future__ import annotations

import json
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable

from triageflow.config import AppConfig


class AiProvider(ABC):
    """Summary: Abstract interface for AI text generation.

    Importance: Allows switching between local and cloud LLMs without refactors.
    Alternatives: Use a single vendor SDK and accept lock-in risk.
    """

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Summary: Generate a JSON response for a system and user prompt pair.

        Importance: Standardizes AI outputs for downstream parsing.
        Alternatives: Return provider-specific response objects directly.
        """


class MockAiProvider(AiProvider):
    """Summary: Deterministic AI provider for local testing.

    Importance: Enables offline workflows and repeatable tests.
    Alternatives: Use a small local LLM for all development tasks.
    """

    def __init__(
        self,
        responses: Iterable[str] | None = None,
        responder: Callable[[str, str], str] | None = None,
    ) -> None:
        """Summary: Initialize with scripted responses or a responder callable.

        Importance: Lets tests drive valid, malformed, and failing AI replies.
        Alternatives: Use fixture-based responses loaded from files.
        """

        self._responses = list(responses) if responses is not None else None
        self._responder = responder
        self.calls: list[tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Summary: Return the next scripted reply, or an empty reply when none exist.

        Importance: An empty reply drives callers onto the rule fallback.
        Alternatives: Echo the prompt back like a canned completion.
        """

        started = time.time()
        self.calls.append((system_prompt, user_prompt))
        if self._responder is not None:
            response = self._responder(system_prompt, user_prompt)
        elif self._responses:
            response = self._responses.pop(0)
        else:
            response = ""
        latency_ms = int((time.time() - started) * 1000)
        return response, latency_ms


class OllamaProvider(AiProvider):
    """Summary: AI provider that targets a local Ollama server.

    Importance: Supports privacy-sensitive workflows on local hardware.
    Alternatives: Use llama.cpp directly with a Python binding.
    """

    def __init__(self, base_url: str, model: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Summary: Generate JSON text using the Ollama HTTP API.

        Importance: Enables local inference for message classification.
        Alternatives: Use Ollama's CLI and parse its output.
        """

        payload = json.dumps(
            {
                "model": self._model,
                "system": system_prompt,
                "prompt": user_prompt,
                "format": "json",
                "stream": False,
                "options": {"temperature": 0.1},
            }
        )
        request = urllib.request.Request(
            url=f"{self._base_url}/api/generate",
            data=payload.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            raise RuntimeError(f"Ollama request failed: {exc}") from exc
        latency_ms = int((time.time() - started) * 1000)
        return raw.get("response", ""), latency_ms


class OpenAiProvider(AiProvider):
    """Summary: AI provider using OpenAI's chat completion API in JSON mode.

    Importance: Enables higher-quality classification when configured.
    Alternatives: Use other cloud providers or a local model.
    """

    def __init__(self, api_key: str, model: str) -> None:
        self._api_key = api_key
        self._model = model

    def complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Summary: Generate JSON text using OpenAI chat completions.

        Importance: Low temperature and a small token budget keep replies terse and stable.
        Alternatives: Use the responses API or a different provider.
        """

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0.1,
            "max_tokens": 150,
            "response_format": {"type": "json_object"},
        }
        request = urllib.request.Request(
            url="https://api.openai.com/v1/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            raise RuntimeError(f"OpenAI request failed: {exc}") from exc
        latency_ms = int((time.time() - started) * 1000)
        choices = raw.get("choices") or []
        if not choices:
            return "", latency_ms
        content = (choices[0].get("message") or {}).get("content") or ""
        return content, latency_ms


@dataclass(frozen=True)
class AiProviderFactory:
    """Summary: Factory for selecting AI providers from configuration.

    Importance: Keeps provider selection logic centralized.
    Alternatives: Wire providers manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> AiProvider:
        """Summary: Construct the configured AI provider.

        Importance: Ensures consistent provider selection across services.
        Alternatives: Use dependency injection frameworks.
        """

        if self.config.ai_provider == "ollama":
            return OllamaProvider(self.config.ollama_url, self.config.ollama_model)
        if self.config.ai_provider == "openai":
            if not self.config.openai_api_key:
                raise ValueError("OPENAI_API_KEY is required for openai provider")
            return OpenAiProvider(self.config.openai_api_key, self.config.openai_model)
        return MockAiProvider()
