"""
sixshelf command line.

Usage:
  sixshelf [run]                 open the launcher grid
  sixshelf resolve NAME          show the package/activity an app name maps to
  sixshelf extract PACKAGE       extract (and cache) a package's icon
  sixshelf cache clear           drop cached icons and icon paths
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

from sixshelf import __version__
from sixshelf.config import config_path, load_config
from sixshelf.errors import ConfigError, ShelfError
from sixshelf.graphics.images import save_image
from sixshelf.services.android import get_android_system
from sixshelf.services.cache import IconCache, ResourcePathCache
from sixshelf.services.extraction import IconExtractor
from sixshelf.services.icons import IconLoader
from sixshelf.services.resolver import get_resolver
from sixshelf.utils.helpers import config_root, setup_logging


def build_extractor(root: Path) -> IconExtractor:
    return IconExtractor(get_android_system(), IconCache(root), ResourcePathCache(root))


def cmd_run(args) -> int:
    setup_logging(args.debug, console=False)
    config = load_config(args.config, get_resolver())

    from sixshelf.app import ShelfApp
    loader = IconLoader(build_extractor(config_root()))
    ShelfApp(config, get_android_system(), loader).run()
    return 0


def cmd_resolve(args) -> int:
    setup_logging(args.debug)
    entry = get_resolver().resolve(args.name)
    print(f"{args.name}: {entry.package}/{entry.entry_point}")
    return 0


def cmd_extract(args) -> int:
    setup_logging(args.debug)
    root = config_root()
    icon = build_extractor(root).extract_icon(args.package)
    print(f"{args.package}: {icon.source_path} ({icon.image.width}x{icon.image.height})")
    if args.output:
        save_image(icon.image, args.output)
        print(f"Saved to {args.output}")
    return 0


def cmd_cache_clear(args) -> int:
    setup_logging(args.debug)
    root = config_root()
    both = not args.icons and not args.hints
    if args.icons or both:
        print(f"Removed {IconCache(root).clear()} cached icons")
    if args.hints or both:
        print(f"Removed {ResourcePathCache(root).clear()} cached icon paths")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sixshelf", description="Sixel app launcher grid")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None,
                        help=f"config file (default: {config_path()})")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    parser.set_defaults(func=cmd_run)

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="open the launcher grid").set_defaults(func=cmd_run)

    resolve = sub.add_parser("resolve", help="resolve an app name to package/activity")
    resolve.add_argument("name")
    resolve.set_defaults(func=cmd_resolve)

    extract = sub.add_parser("extract", help="extract a package icon")
    extract.add_argument("package")
    extract.add_argument("--output", "-o", type=Path, help="also save the icon here as PNG")
    extract.set_defaults(func=cmd_extract)

    cache = sub.add_parser("cache", help="manage on-disk caches")
    cache_sub = cache.add_subparsers(dest="cache_command", required=True)
    clear = cache_sub.add_parser("clear", help="remove cached icons and icon paths")
    clear.add_argument("--icons", action="store_true", help="only decoded icons")
    clear.add_argument("--hints", action="store_true", help="only icon resource paths")
    clear.set_defaults(func=cmd_cache_clear)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1
    except ShelfError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
