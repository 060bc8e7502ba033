#!/usr/bin/env -S python3 -B -u
"""
Configuration loader for RTC emulator.

Provides the lab configuration for all components. Configuration is
loaded once by the front end and passed explicitly to every lab operation.
"""

import ipaddress
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml

from .exceptions import ConfigurationError


DEFAULT_STATE_PATH = '/run/rtc-emulator/lab.json'
DEFAULT_BRIDGE_NAME = 'rtcemu0'
DEFAULT_BRIDGE_ADDRESS = '10.200.0.1/24'
DEFAULT_INTERNET_PROBE_TARGET = '1.1.1.1'
DEFAULT_PROBE_TIMEOUT = 1
DEFAULT_MAX_NODES = 250


@dataclass(frozen=True)
class LabConfig:
    """Reserved names, addresses and paths used by every lab operation."""
    state_path: str = DEFAULT_STATE_PATH
    bridge_name: str = DEFAULT_BRIDGE_NAME
    bridge_address: str = DEFAULT_BRIDGE_ADDRESS
    internet_probe_target: str = DEFAULT_INTERNET_PROBE_TARGET
    probe_timeout: int = DEFAULT_PROBE_TIMEOUT
    max_nodes: int = DEFAULT_MAX_NODES

    @property
    def bridge_interface(self) -> ipaddress.IPv4Interface:
        return ipaddress.IPv4Interface(self.bridge_address)

    @property
    def gateway_ip(self) -> str:
        """Address of the bridge, used as default route by every node."""
        return str(self.bridge_interface.ip)

    @property
    def subnet(self) -> str:
        return str(self.bridge_interface.network)

    @property
    def prefix_length(self) -> int:
        return self.bridge_interface.network.prefixlen

    def node_address(self, index: int) -> str:
        """Address of node<index>: network base + index + 1."""
        network = self.bridge_interface.network
        return str(network.network_address + index + 1)

    def node_capacity(self) -> int:
        """Number of node addresses between the gateway slot and broadcast."""
        return max(self.bridge_interface.network.num_addresses - 3, 0)

    def validate(self, config_file: Optional[str] = None) -> 'LabConfig':
        for name in ('state_path', 'bridge_name', 'bridge_address', 'internet_probe_target'):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(
                    f"{name} must be a non-empty string: got {value!r}",
                    config_file=config_file
                )
        for name in ('probe_timeout', 'max_nodes'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(
                    f"{name} must be an integer: got {value!r}",
                    config_file=config_file
                )

        try:
            interface = self.bridge_interface
        except ValueError as e:
            raise ConfigurationError(
                f"invalid bridge_address {self.bridge_address!r}: {e}",
                config_file=config_file, cause=e
            )
        if interface.ip != interface.network.network_address + 1:
            raise ConfigurationError(
                f"bridge_address must be the first host of its subnet: got {self.bridge_address}",
                config_file=config_file
            )
        if len(self.bridge_name) > 15:
            raise ConfigurationError(
                f"bridge_name must be 1-15 characters: got {self.bridge_name!r}",
                config_file=config_file
            )
        if self.probe_timeout < 1:
            raise ConfigurationError(
                f"probe_timeout must be at least 1 second: got {self.probe_timeout!r}",
                config_file=config_file
            )
        if self.max_nodes < 1:
            raise ConfigurationError(
                f"max_nodes must be a positive integer: got {self.max_nodes!r}",
                config_file=config_file
            )
        return self


def config_search_paths() -> List[Path]:
    """
    Configuration file location precedence:
    1. Environment variable RTCEMU_CONF (if set)
    2. ~/rtc_emulator.yaml (user's home directory)
    3. ./rtc_emulator.yaml (current directory)
    """
    config_files = []

    env_config = os.environ.get('RTCEMU_CONF')
    if env_config:
        config_files.append(Path(env_config))

    config_files.extend([
        Path.home() / 'rtc_emulator.yaml',
        Path('./rtc_emulator.yaml')
    ])
    return config_files


def load_config_file(config_file: Path) -> Dict[str, Any]:
    """Read one YAML configuration file into a dictionary."""
    try:
        with open(config_file, 'r') as f:
            file_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in configuration file: {e}",
                                 config_file=str(config_file), cause=e)
    except OSError as e:
        raise ConfigurationError(f"cannot read configuration file: {e}",
                                 config_file=str(config_file), cause=e)

    if not isinstance(file_config, dict):
        raise ConfigurationError("configuration file must contain a mapping",
                                 config_file=str(config_file))
    return file_config


def load_lab_config(search_paths: Optional[List[Path]] = None) -> LabConfig:
    """
    Load lab configuration with proper precedence.

    The first existing file wins; its ``lab`` section overrides the
    defaults. RTCEMU_STATE_PATH overrides the state file location.

    Returns:
        Validated LabConfig
    """
    config = LabConfig()
    source = None

    for config_file in (search_paths if search_paths is not None else config_search_paths()):
        if not config_file.exists():
            continue
        source = str(config_file)
        lab_section = load_config_file(config_file).get('lab', {}) or {}
        if not isinstance(lab_section, dict):
            raise ConfigurationError("'lab' section must be a mapping", config_file=source)

        known = set(LabConfig.__dataclass_fields__)
        unknown = sorted(set(lab_section) - known)
        if unknown:
            raise ConfigurationError(f"unknown lab settings: {', '.join(unknown)}", config_file=source)
        try:
            config = replace(config, **lab_section)
        except TypeError as e:
            raise ConfigurationError(f"invalid lab settings: {e}", config_file=source, cause=e)
        break

    state_path = os.environ.get('RTCEMU_STATE_PATH')
    if state_path:
        config = replace(config, state_path=state_path)

    return config.validate(source)
