"""
M365 Admin Reports - Configuration Management

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (MS365_*, M365_REPORT_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
tenant_id: ${MS365_TENANT_ID}
client_id: ${MS365_CLIENT_ID}
sharepoint_admin_url: https://contoso-admin.sharepoint.com
output_dir: ./reports

reports:
  mailbox-activity:
    inactive_days: 60
  site-storage:
    warning_percent: 85
```
"""
import logging
import os
import re
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .constants import ENV_ADMIN_URL, ENV_CLIENT_ID, ENV_TENANT_ID
from .mapping import to_bool

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './m365-report.yaml',
    './m365-report.yml',
    '~/.m365-report/config.yaml',
    '~/.m365-report/config.yml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'tenant_id': ENV_TENANT_ID,
    'client_id': ENV_CLIENT_ID,
    'sharepoint_admin_url': ENV_ADMIN_URL,
    'output_dir': 'M365_REPORT_OUTPUT_DIR',
    'log_level': 'M365_REPORT_LOG_LEVEL',
    'log_dir': 'M365_REPORT_LOG_DIR',
}

# argparse attribute -> config key
ARG_MAPPING = {
    'tenant_id': 'tenant_id',
    'client_id': 'client_id',
    'admin_url': 'sharepoint_admin_url',
    'output_dir': 'output_dir',
    'log_level': 'log_level',
    'log_dir': 'log_dir',
}


class ConfigError(ValueError):
    """Raised when a config file cannot be read or parsed."""


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation."""
    value = data
    for key in key_path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # Config may name the tenant and client; warn if others can read it
    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    try:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    if 'client_secret' in config:
        logger.warning("Ignoring client_secret in config file; set MS365_CLIENT_SECRET instead")
        config.pop('client_secret')

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}
    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value:
            config[config_key] = value
    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format."""
    config: Dict[str, Any] = {}
    for arg_name, config_key in ARG_MAPPING.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            config[config_key] = value
    return config


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    configs.append(args_to_config(args))

    return merge_configs(*configs)


def report_options(config: Dict[str, Any], definition, args) -> Dict[str, Any]:
    """
    Resolve a report's option values.

    Priority: CLI argument > config ``reports.<slug>.<option>`` > option default.
    """
    section = _get_nested(config, f"reports.{definition.slug}", {}) or {}
    resolved: Dict[str, Any] = {}
    for option in definition.options:
        value = getattr(args, option.name, None)
        if value is None and option.name in section:
            value = section[option.name]
            if value is not None and option.is_flag:
                value = to_bool(value)
            elif value is not None:
                value = option.type(value) if not isinstance(value, bool) else value
            if option.choices and value is not None and value not in option.choices:
                raise ConfigError(
                    f"reports.{definition.slug}.{option.name}: '{value}' is not one of {', '.join(option.choices)}"
                )
        if value is None:
            value = option.default
        resolved[option.name] = value
    return resolved


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# M365 Admin Reports Configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# =============================================================================
# Connection
# =============================================================================
# App registration (application permissions). The client secret is read from
# the MS365_CLIENT_SECRET environment variable only - never put it here.
tenant_id: ${MS365_TENANT_ID}
client_id: ${MS365_CLIENT_ID}

# Needed by SharePoint reports (site-storage). Prompted for if missing.
# sharepoint_admin_url: https://contoso-admin.sharepoint.com

# =============================================================================
# Output
# =============================================================================
# Directory for <ReportName>_<yyyyMMdd_HHmmss>.csv files
output_dir: "."

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO

# Also write a (redacted) log file here
# log_dir: ./logs

# =============================================================================
# Per-report defaults (same names as the CLI options, with underscores)
# =============================================================================
reports:
  mailbox-activity:
    inactive_days: 90
    period: D180
  site-storage:
    inactive_days: 180
    warning_percent: 90
  guest-users:
    inactive_days: 90
  device-compliance:
    stale_days: 30
  app-credentials:
    expiring_days: 30
  message-trace:
    days: 2
'''
