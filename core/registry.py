"""Plugin registry -- holds the price source, forecaster, and LLM instances.

main.py builds the plugins named in config.yaml and files them here by
protocol. The backtest runner then takes whichever price source and
forecaster were registered first.
"""

from __future__ import annotations

import logging
from typing import Any

from core.protocols import Forecaster, LLMProvider, PriceSource

logger = logging.getLogger(__name__)

PROTOCOL_TYPES = {
    "price_source": PriceSource,
    "forecaster": Forecaster,
    "llm": LLMProvider,
}


class PluginRegistry:
    """Named plugin instances grouped by protocol.

    Usage:
        registry = PluginRegistry()
        registry.register("price_source", CoinGeckoPriceSource())
        source = registry.first("price_source")
        ...
        await registry.close_all()
    """

    def __init__(self) -> None:
        self._plugins: dict[str, dict[str, Any]] = {key: {} for key in PROTOCOL_TYPES}

    def register(self, protocol_key: str, instance: Any) -> None:
        """File `instance` under `protocol_key`, keyed by its name.

        Raises ValueError for an unknown key and TypeError when the instance
        does not structurally match the protocol.
        """
        protocol = PROTOCOL_TYPES.get(protocol_key)
        if protocol is None:
            raise ValueError(
                f"Unknown protocol key '{protocol_key}', expected one of {sorted(PROTOCOL_TYPES)}"
            )
        if not isinstance(instance, protocol):
            raise TypeError(f"{type(instance).__name__} does not implement {protocol.__name__}")

        bucket = self._plugins[protocol_key]
        if instance.name in bucket:
            logger.warning("Replacing %s plugin '%s'", protocol_key, instance.name)
        bucket[instance.name] = instance
        logger.info("Registered %s plugin: %s", protocol_key, instance.name)

    def get(self, protocol_key: str, name: str) -> Any:
        """Look up one plugin. Raises KeyError when it is not registered."""
        bucket = self._bucket(protocol_key)
        try:
            return bucket[name]
        except KeyError:
            raise KeyError(
                f"No {protocol_key} plugin '{name}' (registered: {list(bucket)})"
            ) from None

    def first(self, protocol_key: str) -> Any:
        """The earliest registered plugin for a protocol."""
        bucket = self._bucket(protocol_key)
        if not bucket:
            raise KeyError(f"No {protocol_key} plugin registered")
        return next(iter(bucket.values()))

    def get_all(self, protocol_key: str) -> list[Any]:
        return list(self._bucket(protocol_key).values())

    def summary(self) -> dict[str, list[str]]:
        """Registered plugin names per protocol, omitting empty protocols."""
        return {key: list(bucket) for key, bucket in self._plugins.items() if bucket}

    async def close_all(self) -> None:
        """Close every plugin that holds a network client."""
        for bucket in self._plugins.values():
            for instance in bucket.values():
                close = getattr(instance, "close", None)
                if close is not None:
                    await close()

    def _bucket(self, protocol_key: str) -> dict[str, Any]:
        if protocol_key not in self._plugins:
            raise KeyError(f"Unknown protocol key: {protocol_key}")
        return self._plugins[protocol_key]
