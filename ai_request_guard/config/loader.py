"""
Configuration management and loading.

Handles executor settings from YAML and the API credential from the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


DEFAULT_DB_PATH = "ai_request_guard.db"
DEFAULT_API_KEY_ENV = "OPENAI_API_KEY"


@dataclass(frozen=True)
class ExecutorConfig:
    """Retry policy and storage settings for the request executor.

    Read once at startup and shared read-only across concurrent calls.
    Delays and timeout are in milliseconds.
    """
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    timeout_ms: int = 75000
    jitter_ratio: float = 0.3
    db_path: str = DEFAULT_DB_PATH
    api_key_env: str = DEFAULT_API_KEY_ENV

    def __post_init__(self):
        """Validate retry policy values."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be > 0")
        if self.max_delay_ms <= 0:
            raise ValueError("max_delay_ms must be > 0")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be between 0 and 1")
        if not self.db_path or not self.db_path.strip():
            raise ValueError("db_path is required and cannot be empty")
        if not self.api_key_env or not self.api_key_env.strip():
            raise ValueError("api_key_env is required and cannot be empty")

    @property
    def max_attempts(self) -> int:
        """Total attempts per call, the first one included."""
        return self.max_retries + 1

    @property
    def timeout_seconds(self) -> float:
        """Per-attempt timeout in seconds, as the transport expects it."""
        return self.timeout_ms / 1000.0


_EXECUTOR_INT_KEYS = ('max_retries', 'base_delay_ms', 'max_delay_ms', 'timeout_ms')


def load_executor_config(path: Optional[str] = None) -> ExecutorConfig:
    """Load and validate executor configuration from a YAML file.

    Strict validation ensures a typo in the retry policy fails at startup
    instead of silently falling back to defaults.

    Args:
        path: Path to YAML configuration file. Defaults are returned when omitted.

    Returns:
        Validated ExecutorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return ExecutorConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Executor config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'executor', 'storage'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {}

    executor_data = raw_config.get('executor', {}) or {}
    if not isinstance(executor_data, dict):
        raise ValueError("'executor' must be a dictionary")
    values.update(_parse_executor_section(executor_data))

    storage_data = raw_config.get('storage', {}) or {}
    if not isinstance(storage_data, dict):
        raise ValueError("'storage' must be a dictionary")

    unknown_storage_keys = set(storage_data.keys()) - {'db_path'}
    if unknown_storage_keys:
        raise ValueError(f"Unknown storage keys: {unknown_storage_keys}")
    if 'db_path' in storage_data:
        if not isinstance(storage_data['db_path'], str):
            raise ValueError("'db_path' in storage must be a string")
        values['db_path'] = storage_data['db_path']

    return ExecutorConfig(**values)


def _parse_executor_section(data: Dict) -> Dict[str, Any]:
    """Parse and type-check the executor section.

    Args:
        data: Executor configuration data

    Returns:
        Keyword arguments for ExecutorConfig

    Raises:
        ValueError: If a key is unknown or has the wrong type
    """
    allowed_keys = set(_EXECUTOR_INT_KEYS) | {'jitter_ratio', 'api_key_env'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in executor: {unknown_keys}")

    values: Dict[str, Any] = {}
    for key in _EXECUTOR_INT_KEYS:
        if key not in data:
            continue
        value = data[key]
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'{key}' in executor must be an integer")
        values[key] = value

    if 'jitter_ratio' in data:
        ratio = data['jitter_ratio']
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)):
            raise ValueError("'jitter_ratio' in executor must be a number")
        values['jitter_ratio'] = float(ratio)

    if 'api_key_env' in data:
        if not isinstance(data['api_key_env'], str):
            raise ValueError("'api_key_env' in executor must be a string")
        values['api_key_env'] = data['api_key_env']

    return values


def resolve_api_key(
    config: ExecutorConfig,
    environ: Optional[Mapping[str, str]] = None
) -> Optional[str]:
    """Read the API credential named by the config from the environment.

    The credential never comes from the YAML file. Blank values count as absent.

    Args:
        config: Executor configuration
        environ: Environment mapping (defaults to os.environ)

    Returns:
        The credential, or None when it is not configured
    """
    env = os.environ if environ is None else environ
    value = env.get(config.api_key_env)
    if value is None or not value.strip():
        return None
    return value.strip()
