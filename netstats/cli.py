"""Command line entry point for netstats."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

from netstats.api_server import ApiServer, ApiServerConfig
from netstats.config import NetstatsConfig, load_config
from netstats.context import (
    CollectorContext,
    build_context,
    influx_store_factory,
    load_pdu_source,
    logging_store_factory,
)
from netstats.logging_setup import setup_logging
from netstats.snmp.pdu import PduSource


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll SNMP devices and write the results to InfluxDB.")
    parser.add_argument(
        "--config",
        dest="config_path",
        default=os.getenv("NETSTATS_CONFIG", "config.yaml"),
        help="Path to the YAML config file (default: $NETSTATS_CONFIG or ./config.yaml).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    parser.add_argument("--testing", action="store_true", help="Print points instead of saving them.")
    parser.add_argument("--names", action="store_true", help="Print the series names per target and exit.")
    parser.add_argument("--repeat", type=int, default=0, help="Number of poll cycles per target (0 = forever).")
    parser.add_argument("--freq", type=float, default=None, help="Default polling interval in seconds.")
    parser.add_argument("--http", dest="http_port", type=int, default=None, help="Status API port (0 disables).")
    parser.add_argument("--logs", dest="log_dir", default=None, help="Log directory.")
    parser.add_argument("--oids", dest="oid_file", default=None, help="OID lookup file.")
    return parser.parse_args(argv)


def build_collector(
    config: NetstatsConfig,
    testing: bool = False,
    source: Optional[PduSource] = None,
) -> CollectorContext:
    source = source or load_pdu_source(config.general.pdu_source)
    factory = logging_store_factory if testing else influx_store_factory
    return build_context(config, source, store_factory=factory)


def print_names(context: CollectorContext) -> None:
    for key, names in sorted(context.series_names().items()):
        print(f"\nSNMP target: {key}")
        print("=" * 41)
        for name in names:
            print(name)


def run(context: CollectorContext, repeat: int, http_port: int, http_host: str, logger: logging.Logger) -> None:
    api_server = None
    if http_port > 0 and repeat == 0:
        api_server = ApiServer(ApiServerConfig(host=http_host, port=http_port), context, logger)
    context.start(count=repeat)
    if api_server:
        api_server.start()
    try:
        if repeat > 0:
            context.wait()
        else:
            while True:
                time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Received interrupt; stopping.")
    finally:
        if api_server:
            api_server.stop()
        context.stop(flush=True)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        config = load_config(
            Path(args.config_path),
            freq=args.freq,
            log_dir=Path(args.log_dir) if args.log_dir else None,
            oid_file=Path(args.oid_file) if args.oid_file else None,
            http_port=args.http_port,
        )
        logger = setup_logging(
            config.general.log_dir,
            error_log_name=f"error.{config.http.port}.log",
            verbose=args.verbose,
        )
        context = build_collector(config, testing=args.testing)
    except Exception as exc:
        print(f"Failed to initialize netstats: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.names:
        print_names(context)
        return

    logger.info("Starting %d pollers and %d senders", len(context.pollers), len(context.senders))
    run(context, args.repeat, config.http.port, config.http.host, logging.getLogger("netstats"))


if __name__ == "__main__":
    main()
