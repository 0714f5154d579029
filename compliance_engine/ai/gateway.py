"""
Contractor Compliance Decision Engine
Provider Gateway — one call contract over interchangeable text providers.

Supported provider kinds:
    - glm     (Zhipu GLM, OpenAI-compatible endpoint via the openai SDK)
    - openai  (OpenAI chat completions)
    - gemini  (Google Gemini via google-genai)

Every adapter normalises to ``complete(messages, config, timeout) -> str``
and reports every failure as ProviderError with the same fields, so
callers never see provider-specific payloads or exception types.

Configuration lookup: named AIConfig records live in the KeyValueStore
under ``ai_configs``. ``resolve_active_config`` returns the first enabled
record that has a key, else a default built from the environment. A
blank ``api_key`` means "no provider available"; the gateway itself
never substitutes a canned answer for it.

Usage:
    from compliance_engine.ai.gateway import ProviderGateway, resolve_active_config

    gw = ProviderGateway()
    text = gw.call(messages, resolve_active_config(store))
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlsplit

from compliance_engine.core.exceptions import NotFoundError, ProviderError, ValidationError
from compliance_engine.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_MESSAGE = (
    "You are a construction document-compliance analyst. "
    "Reply only with JSON in the schema you are given."
)

CONFIG_KEY = "ai_configs"

# provider → (default model, default endpoint, provider-specific key env var)
PROVIDER_DEFAULTS: dict[str, tuple[str, str, str]] = {
    "glm": ("glm-4.5-flash", "https://open.bigmodel.cn/api/paas/v4/chat/completions", "GLM_API_KEY"),
    "openai": ("gpt-4o-mini", "https://api.openai.com/v1/chat/completions", "OPENAI_API_KEY"),
    "gemini": ("gemini-1.5-flash", "https://generativelanguage.googleapis.com", "GEMINI_API_KEY"),
}

DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 1000


def _is_retryable_status(status: int | None) -> bool:
    return status is not None and (status == 429 or status >= 500)


# ═════════════════════════════════════════════════════════════════════════════
# Configuration
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class AIConfig:
    """Named provider configuration record."""
    id: str
    provider: str
    model: str
    api_key: str = ""
    api_endpoint: str = ""
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    enabled: bool = True

    def __post_init__(self):
        self.provider = (self.provider or "").lower()
        if self.provider not in PROVIDER_DEFAULTS:
            raise ValidationError(
                f"Unsupported provider: {self.provider!r}",
                details={"provider": f"must be one of {sorted(PROVIDER_DEFAULTS)}"},
            )

    @property
    def has_credentials(self) -> bool:
        return bool((self.api_key or "").strip())

    def to_dict(self, include_secret: bool = False) -> dict:
        key = self.api_key or ""
        if not include_secret:
            key = f"****{key[-4:]}" if len(key) > 4 else ("****" if key else "")
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "api_key": key,
            "api_endpoint": self.api_endpoint,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AIConfig":
        provider = (data.get("provider") or "glm").lower()
        default_model, default_endpoint, _ = PROVIDER_DEFAULTS.get(provider, ("", "", ""))
        return cls(
            id=str(data.get("id") or f"cfg-{uuid.uuid4().hex[:8]}"),
            provider=provider,
            model=data.get("model") or default_model,
            api_key=data.get("api_key") or "",
            api_endpoint=data.get("api_endpoint") or default_endpoint,
            temperature=float(data.get("temperature", DEFAULT_TEMPERATURE)),
            max_tokens=int(data.get("max_tokens", DEFAULT_MAX_TOKENS)),
            enabled=bool(data.get("enabled", True)),
        )


def default_ai_config() -> AIConfig:
    """Build the fallback configuration from environment variables."""
    provider = os.getenv("AI_PROVIDER", "glm").lower()
    if provider not in PROVIDER_DEFAULTS:
        logger.warning("AI_PROVIDER=%r is not supported — using glm", provider)
        provider = "glm"
    default_model, default_endpoint, key_env = PROVIDER_DEFAULTS[provider]
    return AIConfig(
        id="default",
        provider=provider,
        model=os.getenv("AI_MODEL", default_model),
        api_key=os.getenv("AI_API_KEY") or os.getenv(key_env, ""),
        api_endpoint=os.getenv("AI_API_ENDPOINT", default_endpoint),
        temperature=float(os.getenv("AI_TEMPERATURE", str(DEFAULT_TEMPERATURE))),
        max_tokens=int(os.getenv("AI_MAX_TOKENS", str(DEFAULT_MAX_TOKENS))),
        enabled=True,
    )


class AIConfigRepository:
    """Named AIConfig records persisted as one list in the KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def list_configs(self) -> list[AIConfig]:
        return [AIConfig.from_dict(d) for d in self.store.get(CONFIG_KEY) or []]

    def get(self, config_id: str) -> AIConfig:
        for cfg in self.list_configs():
            if cfg.id == config_id:
                return cfg
        raise NotFoundError(resource="AIConfig", resource_id=config_id)

    def save(self, config: AIConfig) -> AIConfig:
        """Insert or replace by id. Enabling one config disables the others."""
        configs = [c for c in self.list_configs() if c.id != config.id]
        if config.enabled:
            for other in configs:
                other.enabled = False
        configs.append(config)
        self.store.set(CONFIG_KEY, [c.to_dict(include_secret=True) for c in configs])
        logger.info("AI config saved: id=%s provider=%s enabled=%s",
                    config.id, config.provider, config.enabled)
        return config


def resolve_active_config(store: KeyValueStore | None) -> AIConfig:
    """Enabled stored config with a key, else the environment default."""
    if store is not None:
        for cfg in AIConfigRepository(store).list_configs():
            if cfg.enabled and cfg.has_credentials:
                return cfg
    return default_ai_config()


# ═════════════════════════════════════════════════════════════════════════════
# Provider adapters
# ═════════════════════════════════════════════════════════════════════════════

class ProviderClient(ABC):
    """One provider kind behind the uniform completion contract."""

    name = "abstract"

    @abstractmethod
    def complete(self, messages: list[dict], config: AIConfig, timeout: float) -> str:
        """
        Send one chat completion request.

        Args:
            messages: [{"role": "system"|"user", "content": "..."}].
            config: Model, key, endpoint, temperature, max_tokens.
            timeout: Seconds before the request is abandoned.

        Returns:
            The single text completion.

        Raises:
            ProviderError: on any transport, HTTP or payload failure.
        """


class OpenAIProvider(ProviderClient):
    """OpenAI chat completions through the openai SDK."""

    name = "openai"

    def __init__(self):
        self._clients: dict[tuple, object] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _base_url(endpoint: str) -> str | None:
        if not endpoint:
            return None
        base = endpoint.rstrip("/")
        if base.endswith("/chat/completions"):
            base = base[: -len("/chat/completions")]
        return base

    def _get_client(self, config: AIConfig, timeout: float):
        cache_key = (config.api_key, config.api_endpoint, timeout)
        with self._lock:
            client = self._clients.get(cache_key)
            if client is None:
                try:
                    import openai
                except ImportError:
                    raise ProviderError("openai package not installed. Run: pip install openai",
                                        provider=self.name)
                client = openai.OpenAI(
                    api_key=config.api_key,
                    base_url=self._base_url(config.api_endpoint),
                    timeout=timeout,
                    max_retries=0,  # ProviderGateway owns retries
                )
                self._clients[cache_key] = client
        return client

    def complete(self, messages, config, timeout):
        import openai

        client = self._get_client(config, timeout)
        try:
            response = client.chat.completions.create(
                model=config.model,
                messages=messages,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise ProviderError(f"{self.name} request timed out after {timeout}s",
                                provider=self.name, retryable=True) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                f"{self.name} returned HTTP {exc.status_code}",
                provider=self.name,
                status_code=exc.status_code,
                retryable=_is_retryable_status(exc.status_code),
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(f"{self.name} connection failed: {exc}",
                                provider=self.name, retryable=True) from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"{self.name} request failed: {exc}", provider=self.name) from exc

        if not response.choices or not response.choices[0].message.content:
            raise ProviderError(f"{self.name} returned an empty completion", provider=self.name)
        return response.choices[0].message.content


class GLMProvider(OpenAIProvider):
    """Zhipu GLM. The paas/v4 API is OpenAI-compatible, so only the base URL differs."""

    name = "glm"


class GeminiProvider(ProviderClient):
    """
    Google Gemini through google-genai.

    System messages become ``system_instruction``; the remaining messages
    are sent as user contents.
    """

    name = "gemini"

    def __init__(self):
        self._clients: dict[tuple, object] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _base_url(endpoint: str) -> str | None:
        if not endpoint:
            return None
        parts = urlsplit(endpoint)
        if not parts.scheme or not parts.netloc:
            return None
        return f"{parts.scheme}://{parts.netloc}"

    def _get_client(self, config: AIConfig, timeout: float):
        cache_key = (config.api_key, config.api_endpoint, timeout)
        with self._lock:
            client = self._clients.get(cache_key)
            if client is None:
                try:
                    from google import genai
                    from google.genai import types
                except ImportError:
                    raise ProviderError(
                        "google-genai package not installed. Run: pip install google-genai",
                        provider=self.name,
                    )
                http_options = types.HttpOptions(
                    base_url=self._base_url(config.api_endpoint),
                    timeout=int(timeout * 1000),
                )
                client = genai.Client(api_key=config.api_key, http_options=http_options)
                self._clients[cache_key] = client
        return client

    def complete(self, messages, config, timeout):
        from google.genai import errors as genai_errors
        from google.genai import types

        client = self._get_client(config, timeout)

        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(types.Content(role=role, parts=[types.Part(text=m["content"])]))

        gen_config = types.GenerateContentConfig(
            temperature=config.temperature,
            max_output_tokens=config.max_tokens,
        )
        if system_parts:
            gen_config.system_instruction = "\n\n".join(system_parts)

        try:
            response = client.models.generate_content(
                model=config.model,
                contents=contents,
                config=gen_config,
            )
        except genai_errors.APIError as exc:
            raise ProviderError(
                f"{self.name} returned HTTP {exc.code}",
                provider=self.name,
                status_code=exc.code,
                retryable=_is_retryable_status(exc.code),
            ) from exc
        except Exception as exc:
            timed_out = isinstance(exc, TimeoutError) or "timeout" in type(exc).__name__.lower()
            message = (f"{self.name} request timed out after {timeout}s" if timed_out
                       else f"{self.name} request failed: {exc}")
            raise ProviderError(message, provider=self.name, retryable=timed_out) from exc

        if not response.text:
            raise ProviderError(f"{self.name} returned an empty completion", provider=self.name)
        return response.text


# ═════════════════════════════════════════════════════════════════════════════
# Gateway
# ═════════════════════════════════════════════════════════════════════════════

class ProviderGateway:
    """
    Provider-agnostic text completion with retry and uniform errors.

    Retryable failures (timeout, connection, 429, 5xx) are retried with
    exponential backoff up to ``max_retries`` attempts in total.
    """

    def __init__(
        self,
        providers: dict[str, ProviderClient] | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
    ):
        self._providers = providers if providers is not None else {
            "glm": GLMProvider(),
            "openai": OpenAIProvider(),
            "gemini": GeminiProvider(),
        }
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

    @staticmethod
    def _to_messages(prompt) -> list[dict]:
        if isinstance(prompt, str):
            return [
                {"role": "system", "content": DEFAULT_SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ]
        return list(prompt)

    def call(self, prompt, config: AIConfig) -> str:
        """
        Send ``prompt`` to the provider named by ``config``.

        Args:
            prompt: Message list or plain user text.
            config: Resolved AIConfig.

        Returns:
            Raw completion text.

        Raises:
            ProviderError: missing key, unsupported provider, or the call
                failed after all retries.
        """
        if not config.has_credentials:
            raise ProviderError("API key is missing", provider=config.provider)

        client = self._providers.get(config.provider)
        if client is None:
            raise ProviderError(f"Unsupported provider: {config.provider}", provider=config.provider)

        messages = self._to_messages(prompt)
        last_error: ProviderError | None = None

        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                text = client.complete(messages, config, timeout=self.timeout)
                latency_ms = int((time.time() - start_time) * 1000)
                logger.info("Provider call ok: provider=%s model=%s latency=%dms",
                            config.provider, config.model, latency_ms,
                            extra={"provider": config.provider, "duration_ms": latency_ms})
                return text
            except ProviderError as exc:
                last_error = exc
            except Exception as exc:
                last_error = ProviderError(f"{config.provider} adapter failed: {exc}",
                                           provider=config.provider)

            logger.warning("Provider call attempt %d/%d failed: %s",
                           attempt, self.max_retries, last_error,
                           extra={"provider": config.provider})
            if not last_error.retryable or attempt == self.max_retries:
                break
            backoff = min(self.backoff_base * 2 ** (attempt - 1), 4)
            threading.Event().wait(backoff)

        raise last_error

    def test_connection(self, config: AIConfig) -> dict:
        """Probe the provider; never raises."""
        if not config.has_credentials:
            return {"success": False, "message": "API key is missing"}
        try:
            self.call([
                {"role": "system", "content": "Connectivity check."},
                {"role": "user", "content": "Reply with the single word OK."},
            ], config)
        except ProviderError as exc:
            return {"success": False, "message": str(exc)}
        return {"success": True, "message": f"Connected to {config.provider} ({config.model})"}
