# tuneterm/ui/cli.py
import argparse
import logging
import sys

from tuneterm.core.logs import setup_logging
from tuneterm.core.settings import ConfigError, Settings
from tuneterm.player.runtime import Runtime
from tuneterm.ui.app import TunetermApp

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tuneterm",
        description="Spotify in your terminal"
    )

    parser.add_argument("--no-browser", action="store_true",
                        help="Don't open a browser for login, only show the URL")
    parser.add_argument("--logout", action="store_true",
                        help="Forget the cached login before starting")
    parser.add_argument("--token-file", help="Where to cache the login (default ~/.tuneterm_tokens.json)")
    parser.add_argument("--poll-interval", type=float,
                        help="Seconds between now-playing refreshes (default=1)")
    parser.add_argument("--log-file", help="Log destination (default ~/.tuneterm.log)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def load_settings(args) -> Settings:
    if args.poll_interval is not None and args.poll_interval <= 0:
        raise ConfigError("--poll-interval must be positive")
    settings = Settings.from_env()
    return settings.with_overrides(
        token_file=args.token_file,
        poll_interval=args.poll_interval,
        log_file=args.log_file,
        open_browser=False if args.no_browser else None,
    )


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
    except ConfigError as e:
        print(f"tuneterm: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings.log_file, debug=args.debug)
    logger.info("starting (poll every %.1fs)", settings.poll_interval)

    runtime = Runtime(settings)
    if args.logout:
        runtime.logout()
        logger.info("cached login removed")

    TunetermApp(runtime).run()
    logger.info("bye")


if __name__ == "__main__":
    main()
