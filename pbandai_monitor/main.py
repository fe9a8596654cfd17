"""
1.0 Main Entry Point
Starts the Premium Bandai product monitor.

Usage:
    python -m pbandai_monitor.main            # poll every 30s until Ctrl+C
    python -m pbandai_monitor.main --once     # single cycle (cron / CI)
    python -m pbandai_monitor.main --interval 60 --config config.json
"""

import argparse
import logging
import sys
from typing import List, Optional

from pbandai_monitor.config import load_config, CONFIG_FILE_PATH
from pbandai_monitor.monitor import build_poll_loop
from pbandai_monitor.state_store import StateStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = "monitor.log") -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
    # urllib3 retry chatter is noise at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Premium Bandai USA product monitor")
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument("--config", default=CONFIG_FILE_PATH, help="Path to config.json")
    parser.add_argument("--interval", type=float, help="Seconds between poll cycles")
    parser.add_argument("--state-file", help="Path of the JSON state document")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--no-log-file", action="store_true", help="Log to the console only")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose, None if args.no_log_file else "monitor.log")

    config = load_config(args.config)
    if args.interval is not None:
        if args.interval <= 0:
            logger.error("--interval must be positive")
            return 2
        config["poll_interval_seconds"] = args.interval
    if args.state_file:
        config["state_file"] = args.state_file

    logger.info("=" * 60)
    logger.info("Premium Bandai USA Product Monitor")
    logger.info(f"   Sitemap:  {config['sitemap_url']}")
    logger.info(f"   Mode:     {'single check' if args.once else 'loop (%ss)' % config['poll_interval_seconds']}")
    if config.get("discord_webhook_url"):
        logger.info("   Discord:  configured")
    else:
        logger.warning("   Discord:  NOT SET (set PBANDAI_DISCORD_WEBHOOK in .env)")

    state = StateStore(config["state_file"]).load()
    if state.known_ids:
        logger.info(f"   Baseline: {len(state.known_ids)} known products, {len(state.watch_list)} watched")
    else:
        logger.info("   Baseline: none (first run will save current products)")
    logger.info("=" * 60)

    loop = build_poll_loop(config)
    outcome = loop.run(once=args.once)

    if args.once:
        return 0 if outcome.ok else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
