from ciwall.config import settings

from .models import CIProvider, ProviderConfig


def get_provider_config(provider_type: CIProvider) -> ProviderConfig:
    """
    Get ProviderConfig for a CI server using app settings.

    Args:
        provider_type: The CI provider type

    Returns:
        ProviderConfig populated with settings
    """
    if provider_type == CIProvider.HUDSON:
        return ProviderConfig(
            provider=provider_type,
            base_url=settings.HUDSON_URL,
            username=settings.HUDSON_LOGIN,
            password=settings.HUDSON_PASSWORD,
        )

    elif provider_type == CIProvider.TEAMCITY:
        return ProviderConfig(
            provider=provider_type,
            base_url=settings.TEAMCITY_URL,
            username=settings.TEAMCITY_LOGIN,
            password=settings.TEAMCITY_PASSWORD,
        )

    elif provider_type == CIProvider.BAMBOO:
        return ProviderConfig(
            provider=provider_type,
            base_url=settings.BAMBOO_URL,
            username=settings.BAMBOO_LOGIN,
            password=settings.BAMBOO_PASSWORD,
        )

    return ProviderConfig(provider=provider_type)


def get_configured_providers() -> list[CIProvider]:
    """Provider types that have a server URL configured."""
    return [
        provider_type
        for provider_type in CIProvider
        if get_provider_config(provider_type).base_url
    ]


def get_configured_provider(provider_type: CIProvider):
    """
    Get a connector connected with the configured URL and credentials.

    Args:
        provider_type: The CI provider type

    Returns:
        Connected CIProviderInterface instance

    Raises:
        InvalidArgumentError: If no URL is configured for the provider
    """
    from .factory import get_ci_provider

    config = get_provider_config(provider_type)
    connector = get_ci_provider(provider_type)
    connector.connect(config.base_url, config.username, config.password)
    return connector
