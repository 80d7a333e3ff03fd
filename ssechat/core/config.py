"""
Configuration management for SSE Chat
"""

import os
import json
import copy
import logging
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class Config:
    """Configuration manager for SSE Chat"""

    DEFAULT_CONFIG_PATH = Path.home() / ".ssechat" / "config.json"

    # Default configuration
    DEFAULTS = {
        "ollama": {
            "base_url": "http://127.0.0.1:11434",
            "timeout": 120
        },
        "server": {
            "host": "0.0.0.0",
            "port": 5000,
            "debug": False
        },
        "chat": {
            "api_base_url": "http://localhost:5000/api",
            "default_model": "gemma3:1b",
            "timeout": 120,
            "options": {}
        }
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration

        Args:
            config_path: Optional custom config path
        """
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        self.config = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file, falling back to defaults"""
        defaults = copy.deepcopy(self.DEFAULTS)
        if not self.config_path.exists():
            return defaults

        try:
            with open(self.config_path, 'r') as f:
                user_config = json.load(f)
            # User config takes precedence
            return self._deep_merge(defaults, user_config)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in config file {self.config_path}: {e}, using defaults")
        except (IOError, OSError) as e:
            logger.warning(f"Error reading config file {self.config_path}: {e}, using defaults")
        return defaults

    def save(self, config: Optional[Dict[str, Any]] = None):
        """Save configuration to file"""
        config = config or self.config

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            json.dump(config, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Examples:
            config.get('ollama.base_url')
            config.get('chat.default_model', 'llama3.1')
        """
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value by dot-notation key and save

        Examples:
            config.set('ollama.base_url', 'http://remote:11434')
        """
        keys = key.split('.')
        target = self.config

        for k in keys[:-1]:
            if k not in target or not isinstance(target[k], dict):
                target[k] = {}
            target = target[k]

        target[keys[-1]] = value
        self.save()

    def get_ollama_url(self) -> str:
        """
        Get the Ollama base URL

        The OLLAMA_HOST environment variable wins over the config file.
        """
        env_url = os.environ.get("OLLAMA_HOST")
        if env_url:
            if not env_url.startswith(("http://", "https://")):
                env_url = f"http://{env_url}"
            return env_url.rstrip('/')
        return self.get('ollama.base_url').rstrip('/')

    def get_ollama_config(self) -> Dict[str, Any]:
        """Provider configuration for the relay's upstream client"""
        return {
            'base_url': self.get_ollama_url(),
            'timeout': self.get('ollama.timeout', 120),
        }

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                base[key] = self._deep_merge(base[key], value)
            else:
                base[key] = value
        return base


# Global config instance
_config = None


def get_config() -> Config:
    """Get global config instance"""
    global _config
    if _config is None:
        _config = Config()
    return _config
