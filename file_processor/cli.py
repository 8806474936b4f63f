"""
Command-line interface for file-processor.

Commands:
- run: watch the input directory until interrupted (or one pass with --once)
- init: write a default configuration file
- show-config: print the effective configuration
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from file_processor.config import ConfigManager, DEFAULT_CONFIG_FILE
from file_processor.errors import ConfigError
from file_processor.logging_config import setup_logging
from file_processor.pipeline import Pipeline


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1


def _overrides(args) -> Dict[str, Any]:
    """Command-line values that take precedence over file and environment."""
    return {
        "input_directory": getattr(args, "input", None),
        "output_directory": getattr(args, "output", None),
        "processing_interval_seconds": getattr(args, "interval", None),
        "max_file_size_bytes": getattr(args, "max_size", None),
        "supported_extensions": getattr(args, "extensions", None),
        "log_level": getattr(args, "log_level", None),
        "log_file": getattr(args, "log_file", None),
    }


# =============================================================================
# RUN COMMAND
# =============================================================================

def cmd_run(args) -> int:
    """Run the pipeline."""
    try:
        config = ConfigManager(args.config).load(_overrides(args))
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(config.log_level, config.log_file)

    pipeline = Pipeline(config)

    if args.once:
        logger.info("Running single pass...")
        stats = pipeline.run_once()
        logger.info(
            f"Single pass completed: {stats.total_succeeded} processed, "
            f"{stats.total_skipped} skipped, {stats.total_failed} failed"
        )
        return EXIT_OK

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        pipeline.request_stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    pipeline.run()
    return EXIT_OK


# =============================================================================
# INIT COMMAND
# =============================================================================

def cmd_init(args) -> int:
    """Write a default configuration file."""
    config_manager = ConfigManager(args.config)

    try:
        path = config_manager.write_default(force=args.force)
    except ConfigError as e:
        print(f"⚠️  {e}")
        print("   Use --force to overwrite")
        return EXIT_CONFIG_ERROR

    print(f"✅ Wrote default configuration: {path}")
    return EXIT_OK


# =============================================================================
# SHOW-CONFIG COMMAND
# =============================================================================

def cmd_show_config(args) -> int:
    """Print the effective configuration as JSON."""
    try:
        config = ConfigManager(args.config).load()
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    data = config.model_dump(mode="json", by_alias=True)
    data["SupportedExtensions"] = sorted(config.supported_extensions)
    print(json.dumps(data, indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="file-processor",
        description="Watch a directory and transform incoming files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write a starter configuration
  file-processor init

  # Watch ./input until Ctrl+C
  file-processor run

  # Process what is there now and exit
  file-processor run --input /data/in --output /data/out --once

  # Inspect the effective configuration
  file-processor show-config
        """
    )

    parser.add_argument("--config", type=Path, default=None, help=f"Path to configuration file (default: {DEFAULT_CONFIG_FILE})")

    # Also accepted after the command; SUPPRESS keeps an absent flag from
    # overwriting one given before it
    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument("--config", type=Path, default=argparse.SUPPRESS, help="Path to configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", parents=[config_parent], help="Run the file processor")
    run_parser.add_argument("--input", type=Path, help="Directory to monitor")
    run_parser.add_argument("--output", type=Path, help="Directory for processed files")
    run_parser.add_argument("--interval", type=int, help="Seconds between reconciliation scans")
    run_parser.add_argument("--max-size", type=int, help="Maximum file size in bytes")
    run_parser.add_argument("--extensions", help="Comma-separated extensions, e.g. .txt,.csv")
    run_parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    run_parser.add_argument("--log-file", type=Path, help="Also log to this file (rotated)")
    run_parser.add_argument("--once", action="store_true", help="Process current files and exit")
    run_parser.set_defaults(func=cmd_run)

    # Init command
    init_parser = subparsers.add_parser("init", parents=[config_parent], help="Write a default configuration file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")
    init_parser.set_defaults(func=cmd_init)

    # Show-config command
    show_parser = subparsers.add_parser("show-config", parents=[config_parent], help="Print the effective configuration")
    show_parser.set_defaults(func=cmd_show_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if hasattr(args, 'func'):
        return args.func(args)
    else:
        parser.print_help()
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
