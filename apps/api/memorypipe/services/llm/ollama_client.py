from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx


@dataclass
class OllamaGenerateResult:
    text: str
    model: str
    prompt_tokens: int
    completion_tokens: int


@dataclass
class OllamaEmbeddingResult:
    embedding: List[float]
    model: str


class OllamaClient:
    """
    Minimal Ollama client for local generation and embeddings.

    Uses /api/generate (non-streaming) and /api/embeddings to keep integration stable.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
            r = client.post(f"{self.base_url}{path}", json=payload)
            r.raise_for_status()
            return r.json()

    def generate(
        self,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.2,
        num_predict: Optional[int] = None,
    ) -> OllamaGenerateResult:
        options: Dict[str, Any] = {"temperature": temperature}
        if num_predict:
            options["num_predict"] = num_predict

        payload: Dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if system:
            payload["system"] = system

        data = self._post("/api/generate", payload)

        # Ollama returns {"response": "...", "prompt_eval_count": n, "eval_count": m, ...}
        return OllamaGenerateResult(
            text=(data.get("response") or "").strip(),
            model=data.get("model") or model,
            prompt_tokens=int(data.get("prompt_eval_count") or 0),
            completion_tokens=int(data.get("eval_count") or 0),
        )

    def embeddings(self, model: str, prompt: str) -> OllamaEmbeddingResult:
        data = self._post("/api/embeddings", {"model": model, "prompt": prompt})
        vec = data.get("embedding") or []
        return OllamaEmbeddingResult(embedding=[float(x) for x in vec], model=model)
