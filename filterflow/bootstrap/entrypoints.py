"""
bootstrap/entrypoints.py - Application entry points

Provides logging setup and the command-line demo of the cascading filter.
"""

from __future__ import annotations
from typing import List, Optional
import argparse
import json
import logging
import sys

logger = logging.getLogger("bootstrap.entrypoints")


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record):
        return json.dumps({
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        })


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
    fmt: str = DEFAULT_FORMAT,
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON format for logs
        fmt: Format string for plain-text logs
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = JSONFormatter() if json_format else logging.Formatter(fmt)

    # Logs go to stderr so demo output on stdout stays parseable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)


def demo_main(args: Optional[List[str]] = None) -> int:
    """
    Cascading filter demo over a CSV file.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Filter CSV records by region and locality",
        prog="filterflow-demo",
    )
    parser.add_argument("csv", help="CSV file with region and locality columns")
    parser.add_argument("-r", "--region", default=None, help="Region to select")
    parser.add_argument("-l", "--locality", default=None, help="Locality to select")
    parser.add_argument("-c", "--config", default=None, help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides configuration)",
    )
    parser.add_argument("--json", action="store_true", help="Output in JSON format")

    parsed = parser.parse_args(args)

    from .config import load_config

    config = load_config(parsed.config)
    setup_logging(
        level=parsed.log_level or config.logging.level,
        log_file=config.logging.log_file,
        json_format=config.logging.json_logs,
        fmt=config.logging.format,
    )

    from filterflow.selection import (
        DataFrameRecordSource,
        RecordError,
        RecordingSurface,
        SelectionError,
        build_cascading_filter,
    )
    from filterflow.session import create_session, teardown_session

    try:
        records = DataFrameRecordSource.from_csv(
            parsed.csv,
            region_field=config.selection.region_field,
            locality_field=config.selection.locality_field,
        )
    except (OSError, ValueError, RecordError) as e:
        logger.error(f"Could not load {parsed.csv}: {e}")
        return 1

    session = create_session(config)
    try:
        cascading = build_cascading_filter(session, records, RecordingSurface())
        if parsed.region is not None:
            cascading.select_region(parsed.region)
        if parsed.locality is not None:
            cascading.select_locality(parsed.locality)

        state = cascading.state()
        errors = [e.to_dict() for r in cascading.last_results for e in r.errors]
    except SelectionError as e:
        logger.error(str(e))
        return 2
    finally:
        teardown_session(session)

    if parsed.json:
        print(json.dumps({**state, "errors": errors}, default=str))
    else:
        print(f"Region:   {state['region']}")
        print(f"Locality: {state['locality']}")
        print(f"Choices:  {', '.join(str(c) for c in state['choices'])}")
        print(f"Rows:     {state['row_count']}")
        for error in errors:
            print(f"Error:    {error['node_key']}: {error['error']}")

    return 1 if errors else 0


def main():
    """Main entry point for the package."""
    sys.exit(demo_main(sys.argv[1:]))


if __name__ == "__main__":
    main()
