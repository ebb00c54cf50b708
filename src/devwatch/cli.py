"""
CLI for watching stores and components during development.

Usage:
    devwatch watch --stores-dir catberry_stores --components-glob "catberry_components/**/cat-component.json"
    devwatch find --json
"""

import argparse
import json
import logging
import signal
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import WatchConfig
from .event_log import EventLogger
from .finders import ComponentFinder, StoreFinder
from .loaders import BackgroundLoader, LoggingLoader
from .registry import EntityRegistry
from .watcher import EntityWatcher

logger = logging.getLogger("devwatch.cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def build_config(args) -> WatchConfig:
    """Environment values first, command line arguments on top."""
    config = WatchConfig.from_env()
    if args.stores_dir:
        config.stores_directory = Path(args.stores_dir)
    if args.components_glob:
        config.components_glob = list(args.components_glob)
    if getattr(args, "debounce", None) is not None:
        config.debounce_ms = args.debounce
    if getattr(args, "polling", False):
        config.use_polling = True
    return config


def cmd_watch(args):
    """Find entities, then watch them until interrupted."""
    config = build_config(args)
    registry = EntityRegistry()
    store_finder = StoreFinder(registry, config)
    component_finder = ComponentFinder(registry, config)

    store_finder.find()
    component_finder.find()

    loader = BackgroundLoader(LoggingLoader())
    shutdown = GracefulShutdown()

    try:
        with EntityWatcher(store_finder, component_finder, loader, config) as watcher:
            watcher.add_listener(EventLogger())
            watcher.watch()

            logger.info(f"Stores directory: {store_finder.stores_directory}")
            for pattern in config.components_glob:
                logger.info(f"Components glob: {pattern}")
            logger.info("Press Ctrl+C to stop")

            while not shutdown.should_exit:
                time.sleep(0.5)
    finally:
        loader.shutdown(wait=True)
    logger.info("Watcher stopped")


def cmd_find(args):
    """Scan once and print the found stores and components."""
    config = build_config(args)
    registry = EntityRegistry()
    StoreFinder(registry, config).find()
    ComponentFinder(registry, config).find()

    if args.json:
        data = {
            "stores": [s.to_dict() for s in registry.stores()],
            "components": [c.to_dict() for c in registry.components()],
        }
        print(json.dumps(data, indent=2))
        return

    for store in registry.stores():
        print(f"store      {store.name:<30} {store.path}")
    for component in registry.components():
        print(f"component  {component.name:<30} {component.path}")


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Watch stores and components and reload them on change",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch the default catberry_stores and catberry_components layout
  devwatch watch

  # Watch custom locations with a polling observer
  devwatch watch --stores-dir app/stores --components-glob "app/components/**/cat-component.json" --polling

  # List what would be watched
  devwatch find --json
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--env-file", help="Load environment variables from this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_location_arguments(sub):
        sub.add_argument("--stores-dir", help="Directory containing store files")
        sub.add_argument("--components-glob", nargs="+", help="Glob(s) matching component manifests")

    watch_parser = subparsers.add_parser("watch", help="Watch stores and components for changes")
    add_location_arguments(watch_parser)
    watch_parser.add_argument("--debounce", type=int, help="Debounce window in ms (0 disables)")
    watch_parser.add_argument("--polling", action="store_true", help="Use a polling observer")
    watch_parser.set_defaults(func=cmd_watch)

    find_parser = subparsers.add_parser("find", help="List stores and components")
    add_location_arguments(find_parser)
    find_parser.add_argument("--json", action="store_true", help="Print JSON")
    find_parser.set_defaults(func=cmd_find)

    args = parser.parse_args(argv)

    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    args.func(args)


if __name__ == "__main__":
    main()
