"""
Shared shape of every provider-backed assistant call:

    resolve config ─► build prompt ─► gateway.call ─► decode
          │ no key                        │ ProviderError  │ ParseError, anything else
          └──────────────► rule-based fallback ◄───────────┘

No failure after the config lookup leaves the assistant.
"""

import logging
from typing import Callable, TypeVar

from compliance_engine.ai.gateway import AIConfig, ProviderGateway, resolve_active_config
from compliance_engine.ai.prompt_registry import PromptBuilder
from compliance_engine.core.exceptions import ParseError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default for ``config``: look the config up at call time. None means "no provider".
RESOLVE_CONFIG = object()


class ProviderBackedAssistant:
    """Base class wiring gateway, prompt builder and config lookup."""

    def __init__(self, gateway: ProviderGateway | None = None,
                 prompt_builder: PromptBuilder | None = None, store=None):
        self.gateway = gateway or ProviderGateway()
        self.prompts = prompt_builder or PromptBuilder()
        self.store = store

    def active_config(self) -> AIConfig | None:
        """The config to call with, or None when no credential is available."""
        config = resolve_active_config(self.store)
        return config if config.has_credentials else None

    def _ask(
        self,
        kind: str,
        build_prompt: Callable[[], list[dict]],
        decode: Callable[[str], T],
        fallback: Callable[[], T],
        config=RESOLVE_CONFIG,
    ) -> T:
        if config is RESOLVE_CONFIG:
            config = self.active_config()
        if config is None:
            logger.info("%s: no provider credential configured — using rule-based fallback", kind)
            return fallback()

        try:
            raw = self.gateway.call(build_prompt(), config)
            return decode(raw)
        except ProviderError as exc:
            logger.warning("%s: provider failed (%s) — using rule-based fallback", kind, exc)
        except ParseError as exc:
            logger.warning("%s: reply unusable (%s) — using rule-based fallback", kind, exc)
        except Exception as exc:
            logger.warning("%s: unexpected error (%s: %s) — using rule-based fallback",
                           kind, type(exc).__name__, exc, exc_info=True)
        return fallback()
