#!/usr/bin/env python3
"""
decoder_config.py - YAML configuration for the payload decoder

Example decoder.yaml:

    encoding: custom_format_icss
    port: 1
    log_level: INFO
    log_file: logs/decoder.log
    custom_types: types.yaml      # relative to this file

Usage:
    from decoder_config import load_config

    config = load_config('decoder.yaml')
    decoder = config.build_decoder()
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from cayenne_types import DEFAULT_REGISTRY, TypeRegistry, load_type_definitions
from decode_logging import VALID_LEVELS
from payload_decoder import PayloadDecoder, PayloadEncoding

KNOWN_KEYS = ('encoding', 'port', 'log_level', 'log_file', 'custom_types')


class ConfigError(ValueError):
    """Invalid decoder configuration."""


@dataclass(frozen=True)
class DecoderConfig:
    encoding: PayloadEncoding = PayloadEncoding.CAYENNE
    port: Optional[int] = None
    log_level: str = 'WARNING'
    log_file: Optional[Path] = None
    custom_types: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> 'DecoderConfig':
        """
        Build a config from a parsed YAML mapping.

        Relative paths resolve against base_dir. An unknown encoding raises
        UnsupportedEncodingError; anything else invalid raises ConfigError.
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        unknown = sorted(set(data) - set(KNOWN_KEYS))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        def resolve(value: Any) -> Optional[Path]:
            if value is None:
                return None
            path = Path(value)
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            return path

        port = data.get('port')
        if port is not None and (isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 255):
            raise ConfigError(f"Invalid port: {port!r}")

        log_level = str(data.get('log_level', 'WARNING')).upper()
        if log_level not in VALID_LEVELS:
            raise ConfigError(f"Invalid log_level: {data.get('log_level')!r}")

        return cls(
            encoding=PayloadEncoding.parse(str(data.get('encoding', PayloadEncoding.CAYENNE.value))),
            port=port,
            log_level=log_level,
            log_file=resolve(data.get('log_file')),
            custom_types=resolve(data.get('custom_types')),
        )

    def build_registry(self) -> TypeRegistry:
        if self.custom_types is None:
            return DEFAULT_REGISTRY
        return DEFAULT_REGISTRY.extend(load_type_definitions(self.custom_types))

    def build_decoder(self) -> PayloadDecoder:
        return PayloadDecoder(self.encoding, self.build_registry())


def load_config(path: Union[str, Path]) -> DecoderConfig:
    """Load a decoder configuration from a YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return DecoderConfig.from_dict(data, base_dir=path.parent)
