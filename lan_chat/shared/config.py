"""
Configuration Management

Provides configuration classes and environment-based configuration loading.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .constants import (
    DEFAULT_DISCOVERY_PORT,
    DEFAULT_DISCOVERY_TIMEOUT,
    DEFAULT_ENCODING,
    DEFAULT_HISTORY_FILE,
    DEFAULT_LISTEN_BACKLOG,
    DEFAULT_MAX_AUTH_ATTEMPTS,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    DEFAULT_SEND_TIMEOUT,
    DEFAULT_SOCKET_TIMEOUT,
)
from .exceptions import ConfigurationError


def _is_port(value: Any, allow_ephemeral: bool = True) -> bool:
    lower = 0 if allow_ephemeral else 1
    return isinstance(value, int) and not isinstance(value, bool) and lower <= value <= 65535


@dataclass
class ServerConfig:
    """Server configuration settings."""

    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_SERVER_PORT
    discovery_port: int = DEFAULT_DISCOVERY_PORT
    discovery_enabled: bool = True
    advertise_host: str = ""  # empty: resolve per requester
    history_file: str = DEFAULT_HISTORY_FILE
    max_auth_attempts: int = DEFAULT_MAX_AUTH_ATTEMPTS
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    send_timeout: float = DEFAULT_SEND_TIMEOUT
    listen_backlog: int = DEFAULT_LISTEN_BACKLOG
    encoding: str = DEFAULT_ENCODING

    def validate(self) -> None:
        """Validate configuration values."""
        errors: List[str] = []

        if not isinstance(self.host, str) or not self.host.strip():
            errors.append("host must be a non-empty string")

        if not _is_port(self.port):
            errors.append("port must be an integer between 0 and 65535")

        if not _is_port(self.discovery_port):
            errors.append("discovery_port must be an integer between 0 and 65535")

        if self.port and self.port == self.discovery_port:
            errors.append("port and discovery_port cannot be the same")

        if not isinstance(self.advertise_host, str):
            errors.append("advertise_host must be a string")

        if not isinstance(self.history_file, str) or not self.history_file.strip():
            errors.append("history_file must be a non-empty path")

        if not isinstance(self.max_auth_attempts, int) or self.max_auth_attempts < 0:
            errors.append("max_auth_attempts must be a non-negative integer")

        if not isinstance(self.socket_timeout, (int, float)) or self.socket_timeout <= 0:
            errors.append("socket_timeout must be a positive number")

        if not isinstance(self.send_timeout, (int, float)) or self.send_timeout <= 0:
            errors.append("send_timeout must be a positive number")

        if not isinstance(self.listen_backlog, int) or self.listen_backlog < 1:
            errors.append("listen_backlog must be a positive integer")

        if errors:
            raise ConfigurationError(f"Server configuration validation failed: {'; '.join(errors)}")

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        try:
            config = cls(
                host=os.getenv("LAN_CHAT_SERVER_HOST", cls.host),
                port=int(os.getenv("LAN_CHAT_SERVER_PORT", str(cls.port))),
                discovery_port=int(
                    os.getenv("LAN_CHAT_DISCOVERY_PORT", str(cls.discovery_port))
                ),
                discovery_enabled=os.getenv("LAN_CHAT_DISCOVERY_ENABLED", "true").lower() == "true",
                advertise_host=os.getenv("LAN_CHAT_ADVERTISE_HOST", cls.advertise_host),
                history_file=os.getenv("LAN_CHAT_HISTORY_FILE", cls.history_file),
                max_auth_attempts=int(
                    os.getenv("LAN_CHAT_MAX_AUTH_ATTEMPTS", str(cls.max_auth_attempts))
                ),
                socket_timeout=float(
                    os.getenv("LAN_CHAT_SOCKET_TIMEOUT", str(cls.socket_timeout))
                ),
                send_timeout=float(
                    os.getenv("LAN_CHAT_SEND_TIMEOUT", str(cls.send_timeout))
                ),
                listen_backlog=int(
                    os.getenv("LAN_CHAT_LISTEN_BACKLOG", str(cls.listen_backlog))
                ),
            )
            config.validate()
            return config
        except ValueError as e:
            raise ConfigurationError(f"Failed to load server configuration from environment: {e}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """Create configuration from dictionary."""
        try:
            # Filter only known fields
            field_names = {f.name for f in fields(cls)}
            filtered_data = {k: v for k, v in data.items() if k in field_names}
            config = cls(**filtered_data)
            config.validate()
            return config
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Failed to create server configuration from dictionary: {e}")


@dataclass
class ClientConfig:
    """Client configuration settings."""

    host: str = ""  # empty: locate the server via discovery
    port: int = DEFAULT_SERVER_PORT
    username: str = ""
    discovery_port: int = DEFAULT_DISCOVERY_PORT
    discovery_timeout: int = DEFAULT_DISCOVERY_TIMEOUT
    encoding: str = DEFAULT_ENCODING

    def validate(self) -> None:
        """Validate configuration values."""
        errors: List[str] = []

        if not isinstance(self.host, str):
            errors.append("host must be a string")

        if not _is_port(self.port, allow_ephemeral=False):
            errors.append("port must be an integer between 1 and 65535")

        if not _is_port(self.discovery_port, allow_ephemeral=False):
            errors.append("discovery_port must be an integer between 1 and 65535")

        if not isinstance(self.discovery_timeout, (int, float)) or self.discovery_timeout <= 0:
            errors.append("discovery_timeout must be a positive number")

        if errors:
            raise ConfigurationError(f"Client configuration validation failed: {'; '.join(errors)}")

    @property
    def needs_discovery(self) -> bool:
        """True when no server host was configured."""
        return not self.host.strip()

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from environment variables."""
        try:
            config = cls(
                host=os.getenv("LAN_CHAT_CLIENT_HOST", cls.host),
                port=int(os.getenv("LAN_CHAT_CLIENT_PORT", str(cls.port))),
                username=os.getenv("LAN_CHAT_CLIENT_USERNAME", cls.username),
                discovery_port=int(
                    os.getenv("LAN_CHAT_DISCOVERY_PORT", str(cls.discovery_port))
                ),
                discovery_timeout=int(
                    os.getenv("LAN_CHAT_DISCOVERY_TIMEOUT", str(cls.discovery_timeout))
                ),
            )
            config.validate()
            return config
        except ValueError as e:
            raise ConfigurationError(f"Failed to load client configuration from environment: {e}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """Create configuration from dictionary."""
        try:
            field_names = {f.name for f in fields(cls)}
            filtered_data = {k: v for k, v in data.items() if k in field_names}
            config = cls(**filtered_data)
            config.validate()
            return config
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Failed to create client configuration from dictionary: {e}")


class ConfigurationLoader:
    """Configuration loader with support for multiple sources."""

    DEFAULT_CONFIG_PATHS = [
        "lan_chat.json",
        ".lan_chat.json",
        "lan_chat.yaml",
        ".lan_chat.yaml",
        "lan_chat.yml",
        ".lan_chat.yml",
    ]

    @staticmethod
    def load_from_file(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """
        Load configuration from a JSON or YAML file.

        Args:
            config_path: Path to configuration file. If None, looks for default locations.

        Returns:
            Dictionary containing configuration values.

        Raises:
            ConfigurationError: If file cannot be loaded or parsed.
        """
        if config_path is None:
            for path in ConfigurationLoader.DEFAULT_CONFIG_PATHS:
                if os.path.exists(path):
                    config_path = path
                    break

        if config_path is None:
            return {}

        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if config_path.suffix not in ('.json', '.yml', '.yaml'):
            raise ConfigurationError(f"Unsupported configuration file format: {config_path.suffix}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if config_path.suffix == '.json':
                    data = json.load(f)
                else:
                    try:
                        import yaml
                    except ImportError:
                        raise ConfigurationError(
                            "PyYAML is required for YAML configuration files. "
                            "Install with: pip install lan-chat[yaml]"
                        )
                    data = yaml.safe_load(f) or {}
        except ConfigurationError:
            raise
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file {config_path}: {e}")
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
        return data

    @staticmethod
    def load_server_config(
        config_path: Optional[Union[str, Path]] = None,
        use_env: bool = True
    ) -> ServerConfig:
        """
        Load server configuration from file and/or environment.

        Args:
            config_path: Path to configuration file.
            use_env: Whether to load from environment variables.

        Returns:
            ServerConfig instance.
        """
        file_config = ConfigurationLoader.load_from_file(config_path)
        config_data = file_config.get('server', {})

        config = ServerConfig.from_dict(config_data) if config_data else ServerConfig()

        # Environment only overrides values that differ from the defaults
        if use_env:
            ConfigurationLoader._overlay(config, ServerConfig.from_env(), ServerConfig())

        config.validate()
        return config

    @staticmethod
    def load_client_config(
        config_path: Optional[Union[str, Path]] = None,
        use_env: bool = True
    ) -> ClientConfig:
        """
        Load client configuration from file and/or environment.

        Args:
            config_path: Path to configuration file.
            use_env: Whether to load from environment variables.

        Returns:
            ClientConfig instance.
        """
        file_config = ConfigurationLoader.load_from_file(config_path)
        config_data = file_config.get('client', {})

        config = ClientConfig.from_dict(config_data) if config_data else ClientConfig()

        if use_env:
            ConfigurationLoader._overlay(config, ClientConfig.from_env(), ClientConfig())

        config.validate()
        return config

    @staticmethod
    def _overlay(target: Any, env_config: Any, default_config: Any) -> None:
        for field in fields(target):
            env_value = getattr(env_config, field.name)
            if env_value != getattr(default_config, field.name):
                setattr(target, field.name, env_value)
