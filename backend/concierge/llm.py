"""Upstream language/vision models.

The rest of the package only sees `generate(request) -> str`. Providers are tried in
order; an exception or an empty answer moves on to the next one, and if all of them
fail the caller gets "" and answers with a generic retry message.
"""

from __future__ import annotations
import base64
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from .config import Settings
from .images import split_data_url

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class PayloadTooLargeError(RuntimeError):
    """The provider refused the request body (HTTP 413), usually an oversized photo."""


@dataclass
class GenerationRequest:
    system: str = ""
    messages: List[Dict[str, str]] = field(default_factory=list)
    # data URLs; the customer photo goes last
    images: List[str] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 1000


class Generator(Protocol):
    def generate(self, request: GenerationRequest) -> str: ...


def _is_too_large(error: Exception) -> bool:
    if getattr(error, "status_code", None) == 413:
        return True
    text = str(error).lower()
    return "413" in text or "too large" in text


class GroqProvider:
    """Groq through its OpenAI-compatible endpoint."""

    name = "groq"

    def __init__(self, api_key: str, chat_model: str, vision_model: str, timeout: float = 30.0):
        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, base_url=GROQ_BASE_URL, timeout=timeout)
        self.chat_model = chat_model
        self.vision_model = vision_model

    def _messages(self, request: GenerationRequest) -> list:
        messages: list = []
        if request.images:
            # vision models take a single user turn: prompt text, then the images
            text = request.system
            if request.messages:
                text += "\n\n" + "\n".join(m["content"] for m in request.messages if m.get("content"))
            content: list = [{"type": "text", "text": text}]
            content += [{"type": "image_url", "image_url": {"url": url}} for url in request.images]
            return [{"role": "user", "content": content}]
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages += [{"role": m["role"], "content": m["content"]} for m in request.messages]
        return messages

    def generate(self, request: GenerationRequest) -> str:
        model = self.vision_model if request.images else self.chat_model
        try:
            completion = self.client.chat.completions.create(
                model=model,
                messages=self._messages(request),
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except Exception as e:
            if _is_too_large(e):
                raise PayloadTooLargeError(str(e)) from e
            raise
        return (completion.choices[0].message.content or "").strip()


class GeminiProvider:
    """Google Gemini, used when Groq fails or is not configured."""

    name = "gemini"

    def __init__(self, api_key: str, model: str):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        self._genai = genai
        self.model = model

    def _contents(self, request: GenerationRequest) -> list:
        contents = []
        for m in request.messages:
            role = "model" if m.get("role") == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": m.get("content", "")}]})
        if request.images:
            parts = []
            for url in request.images:
                mime, payload = split_data_url(url)
                parts.append({"mime_type": mime, "data": base64.b64decode(payload)})
            if contents and contents[-1]["role"] == "user":
                contents[-1]["parts"].extend(parts)
            else:
                contents.append({"role": "user", "parts": [{"text": "Identify this cigar."}] + parts})
        if not contents:
            contents.append({"role": "user", "parts": [{"text": "Hello"}]})
        return contents

    def generate(self, request: GenerationRequest) -> str:
        model = self._genai.GenerativeModel(self.model, system_instruction=request.system or None)
        response = model.generate_content(
            self._contents(request),
            generation_config={"temperature": request.temperature, "max_output_tokens": request.max_tokens},
        )
        text: Optional[str] = getattr(response, "text", None)
        return (text or "").strip()


class FallbackGenerator:
    """Try each provider in turn. Returns "" when none of them produced text."""

    def __init__(self, providers: Sequence[Generator]):
        self.providers = list(providers)

    @property
    def available(self) -> bool:
        return bool(self.providers)

    def generate(self, request: GenerationRequest) -> str:
        too_large: Optional[PayloadTooLargeError] = None
        for provider in self.providers:
            name = getattr(provider, "name", type(provider).__name__)
            try:
                text = provider.generate(request)
            except PayloadTooLargeError as e:
                logger.warning("[LLM] %s rejected the payload as too large", name)
                too_large = e
                continue
            except Exception as e:
                logger.error("[LLM] %s failed: %s", name, e)
                continue
            if text:
                logger.info("[LLM] %s succeeded", name)
                return text
            logger.warning("[LLM] %s returned an empty response", name)
        if too_large is not None:
            raise too_large
        return ""


def build_generator(settings: Settings) -> FallbackGenerator:
    providers: List[Generator] = []
    if settings.groq_api_key:
        providers.append(GroqProvider(
            settings.groq_api_key,
            settings.groq_chat_model,
            settings.groq_vision_model,
            timeout=settings.llm_timeout_seconds,
        ))
    if settings.gemini_api_key:
        providers.append(GeminiProvider(settings.gemini_api_key, settings.gemini_model))
    if not providers:
        logger.warning("[LLM] No provider keys configured; chat will answer with a fallback message")
    return FallbackGenerator(providers)
