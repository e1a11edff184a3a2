import json
import logging
import os
import re
from typing import Any, Mapping, Optional
from urllib.parse import urljoin

import requests
from dotenv import load_dotenv

from ..exceptions import GenerationServiceError, QuotaExceededError, is_quota_error

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-1.5-flash"

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> dict:
    """Parse a JSON object out of ``text``.

    Models occasionally wrap the object in prose or a fenced code block, so
    when the whole text is not valid JSON the outermost ``{...}`` span is
    tried instead.
    """
    try:
        value = json.loads(text)
    except ValueError:
        match = _JSON_BLOCK.search(text or "")
        if not match:
            raise GenerationServiceError("Response did not contain a JSON object")
        try:
            value = json.loads(match.group(0))
        except ValueError as exc:
            raise GenerationServiceError(f"Malformed JSON in response: {exc}") from exc
    if not isinstance(value, dict):
        raise GenerationServiceError("Expected a JSON object in the response")
    return value


class GenerationClient:
    """Client for the Generative Language ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = 45,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        key = api_key or os.getenv("GENERATION_API_KEY")
        if not key:
            raise ValueError("Environment variable 'GENERATION_API_KEY' is not set")

        self.api_key = key
        self.model = model or os.getenv("GENERATION_MODEL") or DEFAULT_MODEL
        self.base_url = (base_url or os.getenv("GENERATION_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    # -------- headers --------
    @property
    def headers(self) -> Mapping[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    # -------- core request --------
    def _request(self, path: str, payload: dict) -> dict:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        try:
            r = self.session.request(
                method="POST",
                url=url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GenerationServiceError(f"Generation request failed: {e}") from e

        if r.status_code == 429:
            raise QuotaExceededError(
                f"Generation service rate limited the request: {r.text[:200]}",
                status_code=429,
            )
        if r.status_code >= 400:
            error = GenerationServiceError(
                f"Generation service returned HTTP {r.status_code}: {r.text[:200]}",
                status_code=r.status_code,
            )
            # Quota exhaustion is sometimes reported with a 403 and a RESOURCE_EXHAUSTED body.
            if is_quota_error(error):
                raise QuotaExceededError(str(error), status_code=r.status_code)
            raise error
        try:
            return r.json()
        except ValueError as e:
            raise GenerationServiceError("Generation service returned a non-JSON body") from e

    def _generate(self, prompt: str, generation_config: dict) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        body = self._request(f"/v1beta/models/{self.model}:generateContent", payload)
        try:
            parts = body["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            reason = (body.get("promptFeedback") or {}).get("blockReason") if isinstance(body, dict) else None
            raise GenerationServiceError(
                f"Generation response had no candidates{f' ({reason})' if reason else ''}"
            ) from e
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise GenerationServiceError("Generation response was empty")
        return text

    # -------- API callers --------
    def generate_text(self, prompt: str, temperature: float = 0.7) -> str:
        """Return the model's plain-text completion of ``prompt``."""
        logger.debug("Requesting text generation from %s", self.model)
        return self._generate(prompt, {"temperature": temperature}).strip()

    def generate_structured(
        self,
        prompt: str,
        schema: Optional[Mapping[str, Any]] = None,
        temperature: float = 0.7,
    ) -> dict:
        """Return a JSON object generated for ``prompt``.

        ``schema`` is appended to the prompt as a JSON Schema the reply must
        follow; the service is asked for an ``application/json`` response.
        """
        if schema is not None:
            prompt = (
                f"{prompt}\n\nRespond only with JSON matching this schema:\n"
                f"{json.dumps(schema, indent=2)}"
            )
        logger.debug("Requesting structured generation from %s", self.model)
        text = self._generate(
            prompt,
            {"temperature": temperature, "responseMimeType": "application/json"},
        )
        return extract_json(text)
