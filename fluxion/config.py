"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional
import json

from dotenv import load_dotenv


DEFAULT_ICE_SERVERS = ['stun:stun.l.google.com:19302']


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == '' or value.strip().lower() == 'none':
        return None
    return float(value)


@dataclass
class Config:
    """
    Fluxion Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (FLUXION_*)
    2. Config file (config.json)
    3. Default values
    """
    # Relay server
    relay_host: str = '0.0.0.0'
    relay_port: int = 8080

    # Client side
    relay_url: str = 'ws://localhost:8080'
    ice_servers: List[str] = field(default_factory=lambda: list(DEFAULT_ICE_SERVERS))

    # Flow control
    max_buffered_amount: int = 1024 * 1024  # 1 MiB
    buffer_poll_interval: float = 0.01
    metadata_delay: float = 0.1

    # Timeouts (seconds, None = wait forever)
    negotiation_timeout: Optional[float] = None
    linger_timeout: float = 30.0

    # Storage
    output_dir: Path = field(default_factory=lambda: Path('.'))

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Relay server
        config.relay_host = os.getenv('FLUXION_RELAY_HOST', config.relay_host)
        config.relay_port = int(os.getenv('FLUXION_RELAY_PORT', config.relay_port))

        # Client side
        config.relay_url = os.getenv('FLUXION_RELAY_URL', config.relay_url)

        ice = os.getenv('FLUXION_ICE_SERVERS', '')
        if ice:
            config.ice_servers = [url.strip() for url in ice.split(',') if url.strip()]

        # Flow control
        config.max_buffered_amount = int(
            os.getenv('FLUXION_MAX_BUFFERED_AMOUNT', config.max_buffered_amount)
        )
        config.buffer_poll_interval = float(
            os.getenv('FLUXION_BUFFER_POLL_INTERVAL', config.buffer_poll_interval)
        )
        config.metadata_delay = float(
            os.getenv('FLUXION_METADATA_DELAY', config.metadata_delay)
        )

        # Timeouts
        if 'FLUXION_NEGOTIATION_TIMEOUT' in os.environ:
            config.negotiation_timeout = _optional_float(
                os.environ['FLUXION_NEGOTIATION_TIMEOUT']
            )
        config.linger_timeout = float(
            os.getenv('FLUXION_LINGER_TIMEOUT', config.linger_timeout)
        )

        # Storage
        output_dir = os.getenv('FLUXION_OUTPUT_DIR')
        if output_dir:
            config.output_dir = Path(output_dir)

        # Logging
        config.log_level = os.getenv('FLUXION_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        config.relay_host = data.get('relay_host', config.relay_host)
        config.relay_port = data.get('relay_port', config.relay_port)
        config.relay_url = data.get('relay_url', config.relay_url)
        config.ice_servers = data.get('ice_servers', config.ice_servers)

        config.max_buffered_amount = data.get(
            'max_buffered_amount', config.max_buffered_amount
        )
        config.buffer_poll_interval = data.get(
            'buffer_poll_interval', config.buffer_poll_interval
        )
        config.metadata_delay = data.get('metadata_delay', config.metadata_delay)

        config.negotiation_timeout = data.get(
            'negotiation_timeout', config.negotiation_timeout
        )
        config.linger_timeout = data.get('linger_timeout', config.linger_timeout)

        if 'output_dir' in data:
            config.output_dir = Path(data['output_dir'])

        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'relay_host': self.relay_host,
            'relay_port': self.relay_port,
            'relay_url': self.relay_url,
            'ice_servers': list(self.ice_servers),
            'max_buffered_amount': self.max_buffered_amount,
            'buffer_poll_interval': self.buffer_poll_interval,
            'metadata_delay': self.metadata_delay,
            'negotiation_timeout': self.negotiation_timeout,
            'linger_timeout': self.linger_timeout,
            'output_dir': str(self.output_dir),
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    config = Config()

    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    env_config = Config.from_env()
    defaults = Config()

    # Merge (env takes precedence for non-default values)
    for key in ['relay_host', 'relay_port', 'relay_url', 'ice_servers',
                'max_buffered_amount', 'buffer_poll_interval', 'metadata_delay',
                'negotiation_timeout', 'linger_timeout', 'output_dir',
                'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


EXAMPLE_CONFIG = """
{
  "relay_host": "0.0.0.0",
  "relay_port": 8080,
  "relay_url": "ws://localhost:8080",
  "ice_servers": ["stun:stun.l.google.com:19302"],
  "max_buffered_amount": 1048576,
  "negotiation_timeout": null,
  "output_dir": "./downloads",
  "log_level": "INFO"
}
"""
