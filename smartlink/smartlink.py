#!/usr/bin/env python3
import argparse
import asyncio
import logging
import os
import sys

from aiohttp import web

from modules.helperClasses import ResolverConfig
from modules.server import create_app
from modules.store import ResolutionStore
from settings import SmartlinkSettings, build_resolver_config


def configure_logging(level: str = "INFO") -> None:
    # Log file lives in the data directory next to the database
    log_path = os.path.join(os.getenv('DATA_DIR', '.'), 'smartlink.log')

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path)
        ]
    )


async def run_cleanup(config: ResolverConfig) -> None:
    """Purge expired resolutions and report what is left."""
    store = ResolutionStore(config.db_path, config.cache_ttl_days)
    await store.initialize()
    removed = await store.cleanup_expired()
    stats = await store.get_stats()
    logging.info(f"Removed {removed} expired resolutions")
    logging.info(
        f"Resolutions: {stats['total']} total, {stats['smart_links']} attached to smart links, "
        f"by status {stats['by_status']}, by path {stats['by_resolver_path']}"
    )


def main():
    parser = argparse.ArgumentParser(description='Smart link track resolver service')
    parser.add_argument('--host', type=str, default=None,
                        help='Interface to bind (overrides HOST)')
    parser.add_argument('--port', type=int, default=None,
                        help='Port to listen on (overrides PORT)')
    parser.add_argument('--db-path', type=str, default=None,
                        help='SQLite database path (overrides DB_PATH)')
    parser.add_argument('--cleanup', action='store_true',
                        help='Remove expired resolutions and exit')
    args = parser.parse_args()

    config = build_resolver_config(SmartlinkSettings())
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.db_path:
        config.db_path = args.db_path

    configure_logging(config.log_level)

    if args.cleanup:
        asyncio.run(run_cleanup(config))
        return

    if not config.acrcloud.bearer_token:
        logging.warning("ACRCLOUD_BEARER_TOKEN not set, resolutions will use direct links only")
    else:
        logging.info("ACRCloud configured (%s)", config.acrcloud.base_url)

    try:
        logging.info(f"Starting smart link resolver on {config.host}:{config.port}")
        web.run_app(create_app(config), host=config.host, port=config.port, print=None)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
