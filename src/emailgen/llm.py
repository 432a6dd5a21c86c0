"""
Clients for the generative models.

Gemini is called over its REST API with httpx (it also handles the PDF
vision parts); Anthropic goes through the official SDK. Both expose the same
complete/stream pair so the code assistant can switch per request.
"""

import base64
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

import anthropic
import httpx
import structlog

from emailgen.errors import ConfigurationError, ModelProviderError
from emailgen.models import ChatMessage, MessageRole

logger = structlog.get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in SAFETY_CATEGORIES
]


def _history_roles(history: Optional[List[ChatMessage]]) -> List[Dict[str, str]]:
    # Anything that is not the user (assistant, system, error) is replayed as
    # the assistant side of the conversation.
    return [
        {
            "role": "user" if m.role == MessageRole.USER else "assistant",
            "content": m.content,
        }
        for m in history or []
    ]


class TextModel(ABC):
    name = "model"

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        history: Optional[List[ChatMessage]] = None,
        max_tokens: int = 4000,
        temperature: float = 0.2,
    ) -> str:
        ...

    @abstractmethod
    def stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        history: Optional[List[ChatMessage]] = None,
        max_tokens: int = 4000,
        temperature: float = 0.2,
    ) -> Iterator[str]:
        ...


def pdf_part(data: bytes) -> Dict[str, Any]:
    return {
        "inline_data": {
            "mime_type": "application/pdf",
            "data": base64.b64encode(data).decode("ascii"),
        }
    }


class GeminiClient(TextModel):
    name = "gemini"

    def __init__(self, api_key: str, model: str, http: Optional[httpx.Client] = None, timeout: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.http = http or httpx.Client(timeout=timeout)

    def _url(self, method: str) -> str:
        return f"{GEMINI_BASE_URL}/{self.model}:{method}"

    def _body(
        self,
        parts: List[Dict[str, Any]],
        system: Optional[str],
        history: Optional[List[ChatMessage]],
        generation_config: Dict[str, Any],
    ) -> Dict[str, Any]:
        contents = [
            {
                "role": "user" if turn["role"] == "user" else "model",
                "parts": [{"text": turn["content"]}],
            }
            for turn in _history_roles(history)
        ]
        contents.append({"role": "user", "parts": parts})

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return body

    def _check_key(self):
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set")

    @staticmethod
    def _text_of(payload: Dict[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)

    def _raise_for_status(self, response: httpx.Response):
        if response.status_code == 200:
            return
        try:
            message = response.json().get("error", {}).get("message", "")
        except ValueError:
            message = response.text
        raise ModelProviderError(
            f"Gemini API error ({response.status_code}): {message or 'no details'}"
        )

    def generate_content(
        self,
        parts: List[Dict[str, Any]],
        generation_config: Dict[str, Any],
        system: Optional[str] = None,
        history: Optional[List[ChatMessage]] = None,
    ) -> str:
        self._check_key()
        logger.debug(f"Gemini generateContent with {len(parts)} parts", model=self.model)
        try:
            response = self.http.post(
                self._url("generateContent"),
                params={"key": self.api_key},
                json=self._body(parts, system, history, generation_config),
            )
        except httpx.HTTPError as exc:
            raise ModelProviderError(f"Gemini request failed: {exc}") from exc
        self._raise_for_status(response)
        return self._text_of(response.json())

    def stream_content(
        self,
        parts: List[Dict[str, Any]],
        generation_config: Dict[str, Any],
        system: Optional[str] = None,
        history: Optional[List[ChatMessage]] = None,
    ) -> Iterator[str]:
        self._check_key()
        logger.debug(f"Gemini streamGenerateContent with {len(parts)} parts", model=self.model)
        try:
            with self.http.stream(
                "POST",
                self._url("streamGenerateContent"),
                params={"key": self.api_key, "alt": "sse"},
                json=self._body(parts, system, history, generation_config),
            ) as response:
                if response.status_code != 200:
                    response.read()
                    self._raise_for_status(response)
                for line in response.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    try:
                        payload = json.loads(line[6:])
                    except json.JSONDecodeError as exc:
                        raise ModelProviderError(f"Gemini stream sent malformed data: {exc}") from exc
                    text = self._text_of(payload)
                    if text:
                        yield text
        except httpx.HTTPError as exc:
            raise ModelProviderError(f"Gemini stream failed: {exc}") from exc

    def complete(self, prompt, system=None, history=None, max_tokens=4000, temperature=0.2):
        config = {"temperature": temperature, "maxOutputTokens": max_tokens}
        return self.generate_content([{"text": prompt}], config, system=system, history=history)

    def stream(self, prompt, system=None, history=None, max_tokens=4000, temperature=0.2):
        config = {"temperature": temperature, "maxOutputTokens": max_tokens}
        return self.stream_content([{"text": prompt}], config, system=system, history=history)


class AnthropicClient(TextModel):
    name = "anthropic"

    def __init__(self, api_key: str, model: str, client: Optional[anthropic.Anthropic] = None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("ANTHROPIC_API_KEY is not set")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def _kwargs(self, prompt, system, history, max_tokens, temperature) -> Dict[str, Any]:
        messages = _history_roles(history) + [{"role": "user", "content": prompt}]
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    def complete(self, prompt, system=None, history=None, max_tokens=4000, temperature=0.2):
        logger.debug("Anthropic messages.create", model=self.model)
        try:
            response = self.client.messages.create(
                **self._kwargs(prompt, system, history, max_tokens, temperature)
            )
        except anthropic.APIError as exc:
            raise ModelProviderError(f"Anthropic API error: {exc}") from exc

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    def stream(self, prompt, system=None, history=None, max_tokens=4000, temperature=0.2):
        logger.debug("Anthropic messages.stream", model=self.model)
        try:
            with self.client.messages.stream(
                **self._kwargs(prompt, system, history, max_tokens, temperature)
            ) as stream:
                for text in stream.text_stream:
                    yield text
        except anthropic.APIError as exc:
            raise ModelProviderError(f"Anthropic API error: {exc}") from exc
