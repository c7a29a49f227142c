"""Command-line entry point: print a wall snapshot for every configured CI server."""

import argparse
import json
import logging
import os
import sys

# Configure logging based on ENV environment variable
# ENV=dev: INFO level with detailed format (default)
# ENV=prod/staging: WARNING level, minimal logs
_env = os.getenv("ENV", "dev").lower()
_is_dev = _env == "dev"
_log_level = logging.INFO if _is_dev else logging.WARNING

logging.basicConfig(
    level=_log_level,
    format=(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        if _is_dev
        else "%(levelname)s | %(message)s"
    ),
    datefmt="%H:%M:%S",
)

from ciwall.ci_providers import (  # noqa: E402
    CIProvider,
    ConnectorError,
    get_configured_provider,
    get_configured_providers,
)
from ciwall.config import settings  # noqa: E402
from ciwall.services.wall_service import WallService  # noqa: E402

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=settings.APP_NAME)
    parser.add_argument(
        "--provider",
        choices=[provider.value for provider in CIProvider],
        action="append",
        help="CI server to poll (default: every server with a configured URL)",
    )
    parser.add_argument(
        "--view",
        action="append",
        help="View to display (default: WALL_VIEWS, or every project)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("httpx").setLevel(logging.INFO)

    providers = (
        [CIProvider(value) for value in args.provider]
        if args.provider
        else get_configured_providers()
    )
    if not providers:
        logger.error("No CI server configured! Set HUDSON_URL, TEAMCITY_URL or BAMBOO_URL.")
        return 1

    views = args.view or settings.WALL_VIEWS
    snapshots = []
    exit_code = 0
    for provider_type in providers:
        try:
            connector = get_configured_provider(provider_type)
        except ConnectorError as e:
            logger.error(f"Cannot connect to {provider_type.value}: {e}")
            exit_code = 1
            continue
        try:
            snapshots.append(WallService(connector).snapshot(views).to_dict())
        except ConnectorError as e:
            logger.error(f"Failed to poll {connector.name}: {e}")
            exit_code = 1
        finally:
            connector.close()

    json.dump(snapshots, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
