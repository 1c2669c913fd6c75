"""
Vertex AI REST client for scoring and coaching requests.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import VERTEX_LOCATION, MODEL_NAME, LLM_TIMEOUT, MAX_OUTPUT_TOKENS

logger = logging.getLogger("llm_client")

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class LLMError(RuntimeError):
    """The model endpoint failed or returned something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMClient(ABC):
    """Blocking text-generation client. Callers run it in a worker thread."""

    @abstractmethod
    def generate_content(self, prompt_text: str, temperature: float = 0.0,
                         max_output_tokens: int = MAX_OUTPUT_TOKENS) -> str:
        """Return the model's text for ``prompt_text``."""

    def generate_json(self, prompt: str) -> Dict[str, Any]:
        """
        Generate a JSON object from the model and parse it.
        Strips markdown code fences and surrounding prose before parsing.
        """
        text = self.generate_content(prompt.strip(), temperature=0.0)
        logger.debug("Raw LLM output: %s", repr(text))
        return extract_json_object(text)


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the first JSON object found in ``text``."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("json.loads failed: %s", e)
        # Try extracting JSON from text
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise LLMError(f"LLM did not return valid JSON: {text!r}")
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e2:
            logger.warning("Substring parse also failed: %s", e2)
            raise LLMError(f"LLM did not return valid JSON: {text!r}")
    if not isinstance(parsed, dict):
        raise LLMError(f"Expected a JSON object from LLM, got {type(parsed).__name__}")
    return parsed


class VertexRestClient(LLMClient):
    """REST-based client for Vertex AI Gemini models."""

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT,
                 session: Optional[requests.Session] = None):
        if not project:
            raise ValueError("A Google Cloud project is required for Vertex AI")
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.base_url = f"https://{self.location}-aiplatform.googleapis.com/v1"
        self.model_resource = f"projects/{self.project}/locations/{self.location}/publishers/google/models/{self.model}"
        self.timeout = timeout
        self._session = session or requests.Session()
        self._token: Optional[str] = None

    def _refresh_token(self):
        """Refresh the OAuth token for API calls."""
        if self.credentials_json:
            creds = service_account.Credentials.from_service_account_file(
                self.credentials_json, scopes=_SCOPES,
            )
        else:
            creds, _ = google.auth.default(scopes=_SCOPES)

        creds.refresh(google.auth.transport.requests.Request())
        self._token = creds.token

    def _ensure_token(self):
        if not self._token:
            self._refresh_token()

    def _post(self, url: str, body: Dict[str, Any]) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        try:
            return self._session.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise LLMError(f"Vertex request failed: {e}") from e

    def generate_content(
        self,
        prompt_text: str,
        temperature: float = 0.0,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        stop_sequences: Optional[List[str]] = None,
    ) -> str:
        """Generate content using the Vertex AI REST API."""
        self._ensure_token()
        url = f"{self.base_url}/{self.model_resource}:generateContent"

        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt_text}]}],
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }
        if stop_sequences:
            body["generationConfig"]["stopSequences"] = list(stop_sequences)

        resp = self._post(url, body)
        if resp.status_code == 401:
            # Token expired mid-session
            logger.info("Vertex token rejected, refreshing")
            self._refresh_token()
            resp = self._post(url, body)
        if resp.status_code >= 400:
            raise LLMError(f"Vertex REST error {resp.status_code}: {resp.text}", status_code=resp.status_code)

        return self._parse_response_text(resp.json())

    def _parse_response_text(self, resp_json: Dict[str, Any]) -> str:
        """
        Extract text content from a generateContent response.

        Raises:
            LLMError: If the response carries no text (e.g. blocked by safety filters)
        """
        cands = resp_json.get("candidates") or []
        if cands:
            content = cands[0].get("content") or {}
            for part in content.get("parts") or []:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    return part["text"]
            finish_reason = cands[0].get("finishReason")
            if finish_reason:
                raise LLMError(f"Vertex returned no text (finishReason={finish_reason})")

        if isinstance(resp_json.get("text"), str):
            return resp_json["text"]

        raise LLMError(f"Vertex response had no text: {json.dumps(resp_json, separators=(',', ':'))}")
