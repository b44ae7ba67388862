"""Factory for creating and managing channel adapter instances."""

from typing import Dict, List, Optional, Tuple, Type

import structlog

from ratecompare.config import ChannelAdapterConfig, settings
from ratecompare.core.exceptions import ConfigurationError
from ratecompare.core.models import Channel, FetchStrategy
from ratecompare.scrapers.base import BaseChannelAdapter

logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Registry of adapter classes keyed by channel and fetch strategy.

    Shared dependencies (HTTP client, sleep function, browser manager) are
    passed through to every adapter created.
    """

    def __init__(self):
        self._adapter_registry: Dict[Tuple[Channel, FetchStrategy], Type[BaseChannelAdapter]] = {}

    def register_adapter(self, adapter_class: Type[BaseChannelAdapter]) -> None:
        """Register an adapter class under its channel and strategy.

        Raises:
            ValueError: If the class is not a BaseChannelAdapter
        """
        if not (isinstance(adapter_class, type) and issubclass(adapter_class, BaseChannelAdapter)):
            raise ValueError(f"Adapter class must inherit from BaseChannelAdapter: {adapter_class}")

        key = (adapter_class.channel, adapter_class.strategy)
        self._adapter_registry[key] = adapter_class
        logger.debug(
            "adapter_registered",
            channel=adapter_class.channel.value,
            strategy=adapter_class.strategy.value,
            adapter_class=adapter_class.__name__,
        )

    def strategy_for(self, channel: Channel) -> FetchStrategy:
        """Preferred strategy for a channel under current settings."""
        if channel is Channel.AIRBNB:
            return FetchStrategy(settings.AIRBNB_STRATEGY)
        return FetchStrategy.PAGE

    def create_adapter(
        self,
        channel: Channel,
        config: Optional[ChannelAdapterConfig] = None,
        strategy: Optional[FetchStrategy] = None,
        **dependencies,
    ) -> BaseChannelAdapter:
        """Create and configure an adapter instance.

        Args:
            channel: Channel to create the adapter for
            config: Channel policy; defaults to ChannelAdapterConfig()
            strategy: Override the settings-selected strategy
            **dependencies: Passed to the adapter constructor
                            (http_client, sleep, browser_manager...)

        Raises:
            ConfigurationError: If no adapter is registered for the pair
        """
        strategy = strategy or self.strategy_for(channel)
        adapter_class = self._adapter_registry.get((channel, strategy))
        if not adapter_class:
            logger.warning("adapter_not_found", channel=channel.value, strategy=strategy.value)
            raise ConfigurationError(
                f"No {strategy.value} adapter registered for {channel.value}",
                context={"channel": channel.value, "strategy": strategy.value},
            )

        # Only rendered adapters take a browser manager.
        if strategy is not FetchStrategy.RENDERED:
            dependencies.pop("browser_manager", None)

        adapter = adapter_class(config=config, **dependencies)
        logger.info(
            "adapter_created",
            channel=channel.value,
            strategy=strategy.value,
            adapter_class=adapter_class.__name__,
        )
        return adapter

    def get_registered_channels(self) -> List[Channel]:
        return sorted({channel for channel, _ in self._adapter_registry}, key=Channel.values().index)

    def has_adapter(self, channel: Channel, strategy: Optional[FetchStrategy] = None) -> bool:
        return (channel, strategy or self.strategy_for(channel)) in self._adapter_registry


# Global factory instance
adapter_factory = AdapterFactory()


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance."""
    return adapter_factory
