"""CLI entry point for noat.

Usage:
    noat [publish] [--config PATH] [--posts PATH] [--handle HANDLE]
                   [--base-url URL] [--cwd DIR] [--dry-run] [--verbose]
    noat help
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from noat.config import load_config, read_env
from noat.errors import NoatError
from noat.factory import build_publisher
from noat.posse import PublishSummary

HELP_NOTES = """\
notes:
  config file lookup: noat.config.yaml, noat.config.yml, noat.config.json, noat.config.py
  password source: .env file and/or process env (default NOAT_BLUESKY_APP_PASSWORD)
  default posts directory: ./posts
  only posts committed in HEAD are published; the working tree must be clean
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="noat",
        description="Publish markdown posts from a git repository to Bluesky",
        epilog=HELP_NOTES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", nargs="?", default="publish", choices=["publish", "help"])
    parser.add_argument("--config", type=Path, default=None, help="Config file path")
    parser.add_argument("--posts", default=None, help="Posts directory")
    parser.add_argument("--handle", default=None, help="Bluesky handle")
    parser.add_argument("--base-url", dest="base_url", default=None, help="Base URL for backlinks")
    parser.add_argument("--cwd", type=Path, default=None, help="Working directory")
    parser.add_argument("--dry-run", action="store_true", help="Build drafts without publishing")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def cmd_publish(args: argparse.Namespace) -> PublishSummary:
    cwd = (args.cwd or Path.cwd()).resolve()
    env = read_env(cwd)
    cfg, config_path = load_config(
        cwd,
        env,
        config_path=args.config,
        overrides={"handle": args.handle, "posts": args.posts, "base_url": args.base_url},
    )

    if args.verbose:
        print(f"[noat] config file: {config_path or '(defaults only)'}")
        print(f"[noat] posts dir: {cfg.posts_dir}")

    publisher = build_publisher(cfg, env, cwd)
    summary = publisher.run(dry_run=args.dry_run)

    mode = "dry run complete" if summary.dry_run else "publish complete"
    print(
        f"[noat] {mode}. queued={summary.queued_posts}, "
        f"published={summary.published_posts}, skipped={summary.skipped_posts}"
    )
    return summary


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        cmd_publish(args)
    except NoatError as exc:
        print(f"[noat] {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
