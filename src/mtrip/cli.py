#!/usr/bin/env python3
"""
mtrip command line

    mtrip reflect -p PORT
    mtrip meter -h HOST -p PORT -s PROBE_SIZE -t ROUNDS

Configuration precedence: command line > YAML file (--config) > environment.
"""

import os
import sys
import json
import signal
import logging
import argparse
import threading

import yaml

from mtrip.controller.config_loader import (
    ConfigLoader, ReflectConfig, RunConfig, METER_MODE, REFLECT_MODE,
)
from mtrip.probes.protocol import MTripError
from mtrip.probes.meter import run_meter
from mtrip.probes.reflector import run_reflector
from mtrip.report import format_report

logger = logging.getLogger("mtrip")

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

REQUIRED_FLAGS = {
    'host': '-h/--host',
    'port': '-p/--port',
    'probe_size': '-s/--probe-size',
    'measurement_time': '-t/--time',
}


def configure_logging(level_name: str = None):
    """Log to stderr; level from argument, MTRIP_LOG_LEVEL or INFO"""
    level_name = (level_name or os.getenv('MTRIP_LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO) if level_name in LOG_LEVELS else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - [%(name)s] %(message)s',
        stream=sys.stderr,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mtrip',
        description='Measure one-way UDP bandwidth between two hosts',
    )
    parser.add_argument('--log-level', choices=LOG_LEVELS, default=None,
                        help='Logging level (default: $MTRIP_LOG_LEVEL or INFO)')

    modes = parser.add_subparsers(dest='mode', metavar='MODE')
    modes.required = True

    reflect = modes.add_parser(REFLECT_MODE, help='Answer probes from a meter')
    reflect.add_argument('-p', '--port', type=int, help='Local UDP port to listen on')
    reflect.add_argument('--metrics-port', type=int, help='Expose Prometheus metrics on this port')
    reflect.add_argument('--config', help='YAML configuration file')

    # -h is the remote host, so help moves to --help only
    meter = modes.add_parser(METER_MODE, add_help=False, help='Measure bandwidth to a reflector')
    meter.add_argument('--help', action='help', help='Show this help message and exit')
    meter.add_argument('-h', '--host', help='Remote reflector host')
    meter.add_argument('-p', '--port', type=int, help='Remote reflector port')
    meter.add_argument('-s', '--probe-size', type=int, help='Probe datagram size in bytes')
    meter.add_argument('-t', '--time', dest='measurement_time', type=int,
                       help='Measurement duration in one-second rounds')
    meter.add_argument('--reply-timeout', type=float,
                       help='Seconds to wait for echoes and counts (default: wait forever)')
    meter.add_argument('--json', action='store_true', help='Print the result as JSON')
    meter.add_argument('--metrics-port', type=int, help='Expose Prometheus metrics on this port')
    meter.add_argument('--config', help='YAML configuration file')

    return parser


def resolve_config(args: argparse.Namespace) -> RunConfig:
    """Combine --config file and command line flags into one immutable config"""
    if args.mode == REFLECT_MODE:
        overrides = {'port': args.port, 'metrics_port': args.metrics_port}
    else:
        overrides = {
            'host': args.host,
            'port': args.port,
            'probe_size': args.probe_size,
            'measurement_time': args.measurement_time,
            'reply_timeout': args.reply_timeout,
            'metrics_port': args.metrics_port,
        }

    if args.config:
        config = ConfigLoader.load(args.config)
        if config.mode != args.mode:
            raise ValueError(f"{args.config} configures '{config.mode}' mode, not '{args.mode}'")
        return ConfigLoader.merge(config, **overrides)

    missing = [REQUIRED_FLAGS[name] for name, value in overrides.items()
               if value is None and name in REQUIRED_FLAGS]
    if missing:
        raise ValueError(f"Missing required arguments for {args.mode}: {', '.join(missing)}")

    values = {k: v for k, v in overrides.items() if v is not None}
    values['mode'] = args.mode
    return ConfigLoader.parse(values)


def install_signal_handlers(stop_event: threading.Event):
    """SIGINT/SIGTERM request cancellation and abort whatever is blocking"""
    def handler(signum, frame):
        stop_event.set()
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = resolve_config(args)
    except (ValueError, KeyError, OSError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if not ConfigLoader.validate(config):
        logger.error("Configuration validation failed")
        return 1

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    try:
        if isinstance(config, ReflectConfig):
            run_reflector(config, stop_event)
            return 0

        result = run_meter(config, stop_event)
        if result is None:
            return 130
        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(format_report(result))
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 130
    except MTripError as e:
        logger.error(f"Measurement failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
