"""
Text generation backends for the analysis stages.

Stages depend only on ``TextGenerator.generate(messages, options) -> str``.
Vendor adapters translate that call to LangChain's ChatOpenAI or the Anthropic
SDK and map vendor failures onto the pipeline's error taxonomy.
"""

from __future__ import annotations

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import GrowthConfig
from errors import (
    BackendError,
    NonJSONResponseError,
    TransientBackendError,
    TruncatedResponseError,
)

logger = logging.getLogger(__name__)

Message = Dict[str, str]

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", flags=re.I)


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float = 0.3
    max_tokens: int = 8192
    provider: Optional[str] = None

    @classmethod
    def for_stage(cls, stage: str, provider: Optional[str] = None) -> "GenerationOptions":
        return cls(
            temperature=GrowthConfig.temperature(stage),
            max_tokens=GrowthConfig.max_tokens(stage),
            provider=provider,
        )


def is_transient_message(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in GrowthConfig.RETRYABLE_ERROR_MARKERS)


def _wrap_vendor_error(exc: Exception, provider: str) -> BackendError:
    text = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, (TimeoutError, ConnectionError)) or is_transient_message(text):
        return TransientBackendError(text, provider=provider)
    return BackendError(text, provider=provider)


class TextGenerator(ABC):
    """Capability interface every backend adapter implements."""

    provider_name = "abstract"

    @abstractmethod
    def generate(self, messages: Sequence[Message], options: GenerationOptions) -> str:
        raise NotImplementedError


class OpenAITextGenerator(TextGenerator):
    """ChatOpenAI adapter. One client is cached per (temperature, max_tokens)."""

    provider_name = "openai"

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model_name = model_name or GrowthConfig.OPENAI_MODEL
        self._clients: Dict[Tuple[float, int], Any] = {}

    def _client(self, options: GenerationOptions):
        key = (options.temperature, options.max_tokens)
        if key not in self._clients:
            from langchain_openai import ChatOpenAI

            llm_params = {
                "api_key": self.api_key,
                "model": self.model_name,
                "temperature": options.temperature,
                "max_tokens": options.max_tokens,
                "timeout": GrowthConfig.REQUEST_TIMEOUT_SECONDS,
                "max_retries": 0,
                "model_kwargs": {"response_format": GrowthConfig.RESPONSE_FORMAT},
            }
            if GrowthConfig.OPENAI_ORGANIZATION:
                llm_params["organization"] = GrowthConfig.OPENAI_ORGANIZATION
            self._clients[key] = ChatOpenAI(**llm_params)
        return self._clients[key]

    def generate(self, messages: Sequence[Message], options: GenerationOptions) -> str:
        llm = self._client(options)
        prompt = [(message["role"], message["content"]) for message in messages]
        try:
            response = llm.invoke(prompt)
        except Exception as exc:  # noqa: BLE001
            raise _wrap_vendor_error(exc, self.provider_name) from exc
        finish_reason = (getattr(response, "response_metadata", None) or {}).get("finish_reason")
        content = response.content if isinstance(response.content, str) else str(response.content)
        if finish_reason == "length":
            raise TruncatedResponseError("OpenAI stopped at max_tokens", raw=content)
        return content


class AnthropicTextGenerator(TextGenerator):
    """Anthropic Messages API adapter."""

    provider_name = "anthropic"

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model_name = model_name or GrowthConfig.ANTHROPIC_MODEL
        self._client = None

    def _get_client(self):
        if self._client is None:
            from anthropic import Anthropic

            self._client = Anthropic(api_key=self.api_key, timeout=GrowthConfig.REQUEST_TIMEOUT_SECONDS, max_retries=0)
        return self._client

    def generate(self, messages: Sequence[Message], options: GenerationOptions) -> str:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [
            {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]
        params: Dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": turns,
        }
        if system:
            params["system"] = system
        try:
            response = self._get_client().messages.create(**params)
        except Exception as exc:  # noqa: BLE001
            raise _wrap_vendor_error(exc, self.provider_name) from exc
        text = "".join(getattr(block, "text", "") for block in response.content)
        if getattr(response, "stop_reason", None) == "max_tokens":
            raise TruncatedResponseError("Anthropic stopped at max_tokens", raw=text)
        return text


class ProviderRouter(TextGenerator):
    """Dispatch each call to the adapter named in ``options.provider``."""

    provider_name = "router"

    def __init__(self, adapters: Dict[str, TextGenerator], default_provider: Optional[str] = None):
        if not adapters:
            raise ValueError("ProviderRouter needs at least one adapter")
        self.adapters = dict(adapters)
        self.default_provider = default_provider or next(iter(self.adapters))

    def generate(self, messages: Sequence[Message], options: GenerationOptions) -> str:
        name = options.provider or self.default_provider
        adapter = self.adapters.get(name)
        if adapter is None:
            raise BackendError(f"Unknown text-generation provider: {name}", provider=name)
        logger.debug("Dispatching generation to provider=%s temperature=%s", name, options.temperature)
        return adapter.generate(messages, options)


def build_text_generator(default_provider: Optional[str] = None) -> ProviderRouter:
    adapters: Dict[str, TextGenerator] = {
        "openai": OpenAITextGenerator(),
        "anthropic": AnthropicTextGenerator(),
    }
    return ProviderRouter(adapters, default_provider or GrowthConfig.DEFAULT_PROVIDER)


# ---------------------------------------------------------------------------
# Strict JSON handling
# ---------------------------------------------------------------------------


def _braces_balanced(text: str) -> bool:
    depth = 0
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
    return depth == 0 and not in_string


def strip_code_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", (text or "").strip()).strip()


def parse_json_response(raw: str) -> Any:
    """
    Decode a backend response without repairing it.

    Truncation is checked before decoding: the payload must end with a closing
    brace or bracket and its nesting must balance.
    """
    text = strip_code_fences(raw)
    if not text:
        raise NonJSONResponseError("Empty response from backend", raw=raw or "")

    starts = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not starts:
        raise NonJSONResponseError("Response contains no JSON object", raw=raw)
    payload = text[min(starts):]

    if not payload.endswith(("}", "]")):
        raise TruncatedResponseError(
            f"Response appears truncated (ends with {payload[-20:]!r})", raw=raw
        )
    if not _braces_balanced(payload):
        raise TruncatedResponseError("Response appears truncated (unbalanced braces)", raw=raw)

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise NonJSONResponseError(f"Invalid JSON: {exc}", raw=raw) from exc


def parse_json_object(raw: str) -> Dict[str, Any]:
    data = parse_json_response(raw)
    if not isinstance(data, dict):
        raise NonJSONResponseError("Expected a JSON object at the top level", raw=raw)
    return data


def build_messages(system_prompt: str, user_prompt: str) -> List[Message]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
