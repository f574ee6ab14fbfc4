"""
Configuration management supporting both file-based and environment variable configurations.
"""
import os
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


DEFAULT_LONG_FORMAT = "<<%{time}:%{source}>> %{body}"
DEFAULT_SHORT_FORMAT = "%{body}"


def parse_heartbeat(value: Any) -> Tuple[int, int]:
    """
    Parse a heart-beat setting of the form "<ms>,<ms>".
    A pair of ints is accepted as is.
    """
    if isinstance(value, (tuple, list)):
        parts = list(value)
    else:
        parts = str(value).split(',')

    if len(parts) != 2:
        raise ValueError(f"Invalid heartbeat '{value}': expected '<ms>,<ms>'")

    try:
        outgoing, incoming = (int(str(p).strip()) for p in parts)
    except ValueError:
        raise ValueError(f"Invalid heartbeat '{value}': intervals must be integers")

    if outgoing < 0 or incoming < 0:
        raise ValueError(f"Invalid heartbeat '{value}': intervals must not be negative")

    return outgoing, incoming


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything needed to open one broker connection"""
    host: str = 'localhost'
    port: int = 61613
    login: str = 'guest'
    passcode: str = 'guest'
    ssl: bool = False
    heartbeat: Tuple[int, int] = (0, 0)
    vhost: Optional[str] = None
    connect_timeout: float = 10.0
    connect_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def virtual_host(self) -> str:
        return self.vhost or self.host

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"


class Config:
    """Configuration manager with defaults and environment variable support"""

    # Default configuration values
    DEFAULTS = {
        # Broker connection
        'connection': {
            'host': 'localhost',
            'port': 61613,
            'login': 'guest',
            'passcode': 'guest',
            'ssl': False,
            'heartbeat': '0,0',
            'vhost': None,
            'connect_timeout': 10,      # seconds
            'headers': {},              # extra CONNECT headers, passed through unchanged
        },

        # Message display
        'display': {
            'verbose': False,
            'long_format': DEFAULT_LONG_FORMAT,
            'short_format': DEFAULT_SHORT_FORMAT,
        },

        # Logging
        'logging': {
            'level': 'WARNING',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'file': None,  # None means console only
        }
    }

    # Keys whose environment values must never be coerced to int/bool
    STRING_KEYS = {
        'connection.host',
        'connection.login',
        'connection.passcode',
        'connection.heartbeat',
        'connection.vhost',
        'logging.level',
    }

    def __init__(self, config_file: Optional[str] = None):
        self._config = self._deep_copy(self.DEFAULTS)

        # Load from file if provided
        if config_file and os.path.exists(config_file):
            self._load_from_file(config_file)

        # Override with environment variables
        self._load_from_env()

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.
        Example: config.get('connection.port') returns the port value
        """
        keys = key_path.split('.')
        value = self._config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        keys = key_path.split('.')
        config = self._config

        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def connection_config(self) -> ConnectionConfig:
        """Build the immutable connection settings from the current values"""
        headers = self.get('connection.headers') or {}
        return ConnectionConfig(
            host=str(self.get('connection.host')),
            port=int(self.get('connection.port')),
            login=str(self.get('connection.login')),
            passcode=str(self.get('connection.passcode')),
            ssl=bool(self.get('connection.ssl')),
            heartbeat=parse_heartbeat(self.get('connection.heartbeat')),
            vhost=self.get('connection.vhost') or None,
            connect_timeout=float(self.get('connection.connect_timeout')),
            connect_headers={str(k): str(v) for k, v in headers.items()},
        )

    def _load_from_file(self, config_file: str) -> None:
        """Load configuration from JSON file"""
        try:
            with open(config_file, 'r') as f:
                file_config = json.load(f)
            self._merge_config(self._config, file_config)
        except Exception as e:
            logging.warning(f"Failed to load config file {config_file}: {e}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            'STOMP_HOST': 'connection.host',
            'STOMP_PORT': 'connection.port',
            'STOMP_USER': 'connection.login',
            'STOMP_PASSWORD': 'connection.passcode',
            'STOMP_SSL': 'connection.ssl',
            'STOMP_HEARTBEAT': 'connection.heartbeat',
            'STOMP_VHOST': 'connection.vhost',
            'STOMP_VERBOSE': 'display.verbose',
            'STOMP_LOG_LEVEL': 'logging.level',
        }

        for env_var, config_key in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                if config_key in self.STRING_KEYS:
                    self.set(config_key, env_value)
                else:
                    self.set(config_key, self._convert_env_value(env_value))

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type"""
        # Try integer
        try:
            return int(value)
        except ValueError:
            pass

        # Try boolean
        if value.lower() in ('true', 'yes', 'on'):
            return True
        elif value.lower() in ('false', 'no', 'off'):
            return False

        # Return as string
        return value

    def _merge_config(self, base: Dict, override: Dict) -> None:
        """Recursively merge configuration dictionaries"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _deep_copy(self, obj: Any) -> Any:
        """Deep copy configuration"""
        if isinstance(obj, dict):
            return {k: self._deep_copy(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._deep_copy(item) for item in obj]
        else:
            return obj

    def __str__(self) -> str:
        return json.dumps(self._config, indent=2)


# Global configuration instance
_config_instance: Optional[Config] = None

def get_config() -> Config:
    """Get global configuration instance"""
    global _config_instance
    if _config_instance is None:
        config_file = os.getenv('STOMP_CONFIG_FILE', 'config/console.json')
        _config_instance = Config(config_file)
    return _config_instance

def initialize_config(config_file: Optional[str] = None) -> Config:
    """Initialize global configuration"""
    global _config_instance
    if config_file is None:
        config_file = os.getenv('STOMP_CONFIG_FILE', 'config/console.json')
    _config_instance = Config(config_file)
    return _config_instance
