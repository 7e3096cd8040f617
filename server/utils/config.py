# Configuration loading
# JSON files under server/config, selected by CONFIG_ENV, with ${ENV_VAR} placeholders

import json
import os
import logging
import re
from typing import Dict, Any

CONFIG_FILES = {
    'production': 'config/config-prod.json',
    'development': 'config/config-dev.json',
    'testing': 'config/config-test.json',
}

REQUIRED_SECTIONS = ['app', 'server', 'database', 'auth', 'logging']

SERVER_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _replace_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} placeholders; unknown variables are left as-is"""
    def replace_match(match):
        return os.getenv(match.group(1), match.group(0))

    return re.sub(r'\$\{([^}]+)\}', replace_match, value)


def _process_config_values(config: Any) -> Any:
    if isinstance(config, dict):
        return {k: _process_config_values(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_process_config_values(item) for item in config]
    elif isinstance(config, str):
        return _replace_env_vars(config)
    return config


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(SERVER_DIR, path)


def load_config(config_env: str = None) -> Dict[str, Any]:
    """
    Load the configuration for an environment

    Args:
        config_env: environment name, defaults to CONFIG_ENV or 'development'

    Returns:
        configuration dict
    """
    config_env = config_env or os.getenv('CONFIG_ENV', 'development')
    config_file = _resolve_path(CONFIG_FILES.get(config_env, 'config/config.json'))

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except FileNotFoundError:
        logging.error(f"Config file not found: {config_file}")
        raise
    except json.JSONDecodeError as e:
        logging.error(f"Config file is not valid JSON: {e}")
        raise

    config = _process_config_values(config)
    logging.info(f"Loaded config file: {config_file}")
    return config


def get_database_path(config: Dict[str, Any]) -> str:
    """Database file path, relative paths are taken from the server directory"""
    return _resolve_path(config.get('database', {}).get('path', 'data/lunch_orders.db'))


def validate_config(config: Dict[str, Any]) -> bool:
    for section in REQUIRED_SECTIONS:
        if section not in config:
            logging.error(f"Config is missing required section: {section}")
            return False

    if not config.get('auth', {}).get('jwt_secret_key'):
        logging.error("JWT secret key is not configured")
        return False

    return True


class Config:
    """
    Application configuration
    """
    def __init__(self, config_env: str = None):
        self.env = config_env or os.getenv('CONFIG_ENV', 'development')
        self.config = load_config(self.env)

        if not validate_config(self.config):
            raise ValueError("Config validation failed")

    def get(self, key: str, default=None):
        """
        Look up a dotted key such as 'payments.mock_mode'

        Args:
            key: dotted config key
            default: value returned when any part of the key is missing
        """
        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_database_config(self) -> Dict[str, Any]:
        db_config = self.config.get('database', {}).copy()
        db_config['path'] = get_database_path(self.config)
        return db_config

    def get_payments_config(self) -> Dict[str, Any]:
        return self.config.get('payments', {}).copy()
