import logging
from typing import Dict, Optional, Type

from .base import CIProviderInterface, ClientFactory
from .models import CIProvider

logger = logging.getLogger(__name__)


class CIProviderRegistry:
    """
    Registry and factory for CI server connectors.
    """

    _providers: Dict[CIProvider, Type[CIProviderInterface]] = {}

    @classmethod
    def register(cls, provider_type: CIProvider):
        """
        Decorator to register a connector implementation.

        Args:
            provider_type: The CIProvider enum value

        Returns:
            Decorator function
        """

        def decorator(provider_class: Type[CIProviderInterface]):
            cls._providers[provider_type] = provider_class
            logger.debug(f"Registered CI provider: {provider_type.value}")
            return provider_class

        return decorator

    @classmethod
    def get(
        cls,
        provider_type: CIProvider,
        client_factory: Optional[ClientFactory] = None,
    ) -> CIProviderInterface:
        """
        Get a new, unconnected connector by type.

        Args:
            provider_type: The CIProvider enum value
            client_factory: Optional replacement for the connector's
                transport client constructor

        Returns:
            CIProviderInterface instance

        Raises:
            ValueError: If provider type is not registered
        """
        if provider_type not in cls._providers:
            raise ValueError(
                f"CI provider '{provider_type.value}' is not registered. "
                f"Available: {[p.value for p in cls._providers.keys()]}"
            )

        provider_class = cls._providers[provider_type]
        return provider_class(client_factory=client_factory)

    @classmethod
    def get_all_types(cls) -> list[CIProvider]:
        """Get list of all registered provider types."""
        return list(cls._providers.keys())

    @classmethod
    def is_registered(cls, provider_type: CIProvider) -> bool:
        """Check if a provider type is registered."""
        return provider_type in cls._providers


def get_ci_provider(
    provider_type: CIProvider,
    client_factory: Optional[ClientFactory] = None,
) -> CIProviderInterface:
    """Get a CI connector instance by type."""
    return CIProviderRegistry.get(provider_type, client_factory=client_factory)
