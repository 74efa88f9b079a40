"""Classifier backends.

Every backend shares one interface: ``invoke(prompt) -> str`` returns the raw
reply text or raises.  The gateway only relies on ``name`` and ordering.

Providers
---------
``openai`` (default)
    Any OpenAI-compatible chat endpoint via ``langchain_openai``.  The
    default base URL is Google's OpenAI-compatible Gemini endpoint, so the
    default model list (Gemma first for its larger free quota, then the
    Gemini tiers) works with just ``GEMINI_API_KEY`` set.  Requests are sent
    in JSON mode (``response_format={"type": "json_object"}``).

``ollama``
    Local models via ``langchain_ollama`` in JSON mode.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from linkray.config import Settings, settings

# Ask OpenAI-compatible endpoints for a bare JSON object.
JSON_RESPONSE_FORMAT = {"type": "json_object"}


@dataclass(frozen=True)
class ClassifierConfig:
    """Everything needed to talk to the classifier backends.

    Built once at start-up and handed to :func:`build_backends`.
    """

    provider: str
    models: tuple[str, ...]
    base_url: str = ""
    api_key: str = ""
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "ClassifierConfig":
        source = source or settings
        base_url = (
            source.ollama_base_url
            if source.classifier_provider == "ollama"
            else source.classifier_base_url
        )
        return cls(
            provider=source.classifier_provider,
            models=tuple(source.classifier_models),
            base_url=base_url,
            api_key=source.classifier_api_key,
            timeout=source.classifier_timeout,
        )


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class ClassifierBackend(ABC):
    """Abstract base class for a single classifier backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and failure records."""

    @abstractmethod
    def invoke(self, prompt: str) -> str:
        """Return the raw reply to *prompt*.  Raises on any failure."""


# ---------------------------------------------------------------------------
# LangChain chat-model backend
# ---------------------------------------------------------------------------

class ChatModelBackend(ClassifierBackend):
    """Wrap a LangChain chat model built on first use by *factory*."""

    def __init__(self, name: str, factory: Callable[[], Any]) -> None:
        self._name = name
        self._factory = factory
        self._llm: Any = None

    @property
    def name(self) -> str:
        return self._name

    def invoke(self, prompt: str) -> str:
        if self._llm is None:
            self._llm = self._factory()
        response = self._llm.invoke(prompt)
        content = response.content if hasattr(response, "content") else response
        if isinstance(content, list):
            # Some providers return content blocks instead of a plain string.
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return str(content)


def _chat_model_factory(config: ClassifierConfig, model: str) -> Callable[[], Any]:
    if config.provider == "openai":

        def _openai() -> Any:
            from langchain_openai import ChatOpenAI

            if not config.api_key:
                raise EnvironmentError(
                    "GEMINI_API_KEY environment variable is not set. "
                    "Set it or switch to CLASSIFIER_PROVIDER=ollama."
                )
            llm = ChatOpenAI(
                model=model,
                base_url=config.base_url or None,
                api_key=config.api_key,
                timeout=config.timeout,
                max_retries=0,
                temperature=0,
            )
            return llm.bind(response_format=JSON_RESPONSE_FORMAT)

        return _openai

    if config.provider == "ollama":

        def _ollama() -> Any:
            from langchain_ollama import ChatOllama

            return ChatOllama(
                model=model,
                base_url=config.base_url or None,
                format="json",
                temperature=0,
                client_kwargs={"timeout": config.timeout},
            )

        return _ollama

    raise ValueError(
        f"Unknown classifier provider {config.provider!r}. Use: openai | ollama"
    )


def build_backends(config: ClassifierConfig) -> List[ClassifierBackend]:
    """Return one backend per configured model, in fallback order."""
    return [
        ChatModelBackend(f"{config.provider}:{model}", _chat_model_factory(config, model))
        for model in config.models
    ]
