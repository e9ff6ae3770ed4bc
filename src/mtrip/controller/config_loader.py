#!/usr/bin/env python3
"""
Run Configuration Loader
Parses an optional YAML file into the immutable config of one run mode
"""

import os
import yaml
import logging
from dataclasses import dataclass, replace
from typing import Optional, Union

from mtrip.controller.rate_controller import INITIAL_RATE, INITIAL_PREVIOUS_RATE
from mtrip.probes.protocol import MIN_PROBE_SIZE, MAX_PROBE_SIZE

logger = logging.getLogger(__name__)

REFLECT_MODE = 'reflect'
METER_MODE = 'meter'


def _env_metrics_port() -> Optional[int]:
    value = os.getenv('MTRIP_METRICS_PORT')
    return int(value) if value else None


@dataclass(frozen=True)
class ReflectConfig:
    """Reflector: answers probes on a local port"""
    port: int
    metrics_port: Optional[int] = None

    mode = REFLECT_MODE


@dataclass(frozen=True)
class MeterConfig:
    """Meter: drives measurement against a remote reflector"""
    host: str
    port: int
    probe_size: int
    measurement_time: int
    initial_rate: float = INITIAL_RATE
    initial_previous_rate: float = INITIAL_PREVIOUS_RATE
    # Seconds to wait for an echo or a round count; None waits forever
    reply_timeout: Optional[float] = None
    metrics_port: Optional[int] = None

    mode = METER_MODE


RunConfig = Union[ReflectConfig, MeterConfig]


class ConfigLoader:
    """Loads and validates run configuration"""

    @staticmethod
    def load(config_path: str) -> RunConfig:
        """Load configuration from YAML file"""
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}

            logger.info(f"Loaded configuration from {config_path}")
            return ConfigLoader.parse(config)

        except FileNotFoundError:
            logger.error(f"Config file not found: {config_path}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error: {e}")
            raise

    @staticmethod
    def parse(config: dict) -> RunConfig:
        """Build a run config from a dictionary (YAML document or CLI values)"""
        mode = config.get('mode')
        metrics_port = config.get('metrics_port')
        if metrics_port is None:
            metrics_port = _env_metrics_port()
        else:
            metrics_port = int(metrics_port)

        if mode == REFLECT_MODE:
            return ReflectConfig(
                port=int(config['port']),
                metrics_port=metrics_port,
            )

        if mode == METER_MODE:
            reply_timeout = config.get('reply_timeout')
            return MeterConfig(
                host=str(config['host']),
                port=int(config['port']),
                probe_size=int(config['probe_size']),
                measurement_time=int(config['measurement_time']),
                initial_rate=float(config.get('initial_rate', INITIAL_RATE)),
                initial_previous_rate=float(config.get('initial_previous_rate', INITIAL_PREVIOUS_RATE)),
                reply_timeout=float(reply_timeout) if reply_timeout is not None else None,
                metrics_port=metrics_port,
            )

        raise ValueError(f"Unknown mode {mode!r} (expected '{REFLECT_MODE}' or '{METER_MODE}')")

    @staticmethod
    def merge(config: RunConfig, **overrides) -> RunConfig:
        """Return a copy with every non-None override applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **changes) if changes else config

    @staticmethod
    def validate(config: RunConfig) -> bool:
        """Validate configuration consistency"""
        valid = True

        if not 0 < config.port < 65536:
            logger.error(f"Port must be in 1-65535, got {config.port}")
            valid = False

        if config.metrics_port is not None and not 0 < config.metrics_port < 65536:
            logger.error(f"Metrics port must be in 1-65535, got {config.metrics_port}")
            valid = False

        if isinstance(config, MeterConfig):
            if not config.host:
                logger.error("Remote host is required")
                valid = False
            if not MIN_PROBE_SIZE <= config.probe_size <= MAX_PROBE_SIZE:
                logger.error(f"Probe size must be in {MIN_PROBE_SIZE}-{MAX_PROBE_SIZE} bytes, got {config.probe_size}")
                valid = False
            if config.measurement_time < 1:
                logger.error(f"Measurement time must be at least 1 round, got {config.measurement_time}")
                valid = False
            if config.initial_rate <= 0 or config.initial_previous_rate <= 0:
                logger.error("Initial rates must be positive")
                valid = False
            if config.reply_timeout is not None and config.reply_timeout <= 0:
                logger.error(f"Reply timeout must be positive, got {config.reply_timeout}")
                valid = False

        if valid:
            logger.debug("Configuration validation passed")
        return valid
