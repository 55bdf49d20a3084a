"""Configuration handling for shellexec.

Resolves the effective configuration of one invocation from the context
defaults and the per-call options, and loads default configurations from
YAML or JSON files.
"""

import codecs
import json
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .logging import get_logger
from .types import BYTES_ENCODINGS, ENCODING_TEXT, ExecutionConfig

logger = get_logger(__name__)

# Default configuration file read by the command line tool
DEFAULT_CONFIG_PATH = Path.home() / ".shellexec" / "config.yaml"

# Public option key -> dataclass field
OPTION_FIELDS: dict[str, str] = {f.name: f.name for f in fields(ExecutionConfig)}
OPTION_FIELDS["async"] = "async_"

def _check_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"Option {key} must be a boolean, got {value!r}", option=key)
    return value

def _check_optional_str(key: str, value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Path):
        return str(value)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"Option {key} must be a non-empty string, got {value!r}", option=key)
    return value

def _check_max_buffer(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Option {key} must be an integer >= 0, got {value!r}", option=key)
    return value

def _check_timeout(key: str, value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"Option {key} must be a number of seconds >= 0, got {value!r}", option=key)
    return value

def _check_encoding(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"Option {key} must be a string, got {value!r}", option=key)
    if value in BYTES_ENCODINGS or value == ENCODING_TEXT:
        return value
    try:
        codecs.lookup(value)
    except LookupError:
        raise ConfigError(f"Unknown encoding: {value}", option=key) from None
    return value

def _check_fatal_exceptions(key: str, value: Any) -> frozenset[int]:
    if value is None:
        return frozenset()
    try:
        codes = frozenset(value)
    except TypeError:
        raise ConfigError(f"Option {key} must be a collection of exit codes", option=key) from None
    if not all(isinstance(code, int) and not isinstance(code, bool) for code in codes):
        raise ConfigError(f"Option {key} must only contain integers, got {value!r}", option=key)
    return codes

def _check_env(key: str, value: Any) -> Mapping[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ConfigError(f"Option {key} must be a mapping, got {type(value).__name__}", option=key)
    return {str(k): str(v) for k, v in value.items()}

_VALIDATORS = {
    "interpreter_path": _check_optional_str,
    "silent": _check_bool,
    "async_": _check_bool,
    "fatal": _check_bool,
    "fatal_exceptions": _check_fatal_exceptions,
    "cwd": _check_optional_str,
    "max_buffer": _check_max_buffer,
    "timeout": _check_timeout,
    "encoding": _check_encoding,
    "shell": _check_optional_str,
    "env": _check_env,
}

def normalize_options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    """Validate per-call options and map them to ExecutionConfig fields.

    Args:
        options: Option mapping, keyed by public option name

    Returns:
        Dict of field name -> validated value, holding only the given keys

    Raises:
        ConfigError: If a key is unknown or a value is invalid
    """
    if not options:
        return {}

    normalized: dict[str, Any] = {}
    for key, value in options.items():
        field_name = OPTION_FIELDS.get(key)
        if field_name is None:
            valid = ", ".join(sorted(k for k in OPTION_FIELDS if k != "async_"))
            raise ConfigError(f"Unknown option: {key}. Valid options: {valid}", option=key)
        normalized[field_name] = _VALIDATORS[field_name](key, value)
    return normalized

def resolve_config(
    defaults: ExecutionConfig,
    options: Mapping[str, Any] | None = None,
) -> ExecutionConfig:
    """Overlay per-call options on the context defaults.

    Only keys present in options are replaced; everything else keeps the
    value of defaults, which is never modified.

    Example:
        >>> defaults = ExecutionConfig(silent=True, fatal=True)
        >>> effective = resolve_config(defaults, {"fatal": False})
        >>> (effective.silent, effective.fatal)
        (True, False)
    """
    return replace(defaults, **normalize_options(options))

def load_config(path: str | Path, base: ExecutionConfig | None = None) -> ExecutionConfig:
    """Load a configuration file.

    YAML is used for .yml/.yaml files, JSON for everything else. The file
    holds a mapping of option names, applied on top of base.

    Args:
        path: Path to the configuration file
        base: Configuration to overlay (defaults to ExecutionConfig())

    Returns:
        The resulting ExecutionConfig

    Raises:
        ConfigError: If the file cannot be read or holds invalid options
    """
    path = Path(path)
    try:
        with path.open() as f:
            if path.suffix in (".yml", ".yaml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}", path=str(path)) from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}", path=str(path)) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", path=str(path))

    logger.debug("Loaded config", path=path, keys=sorted(data))
    return resolve_config(base or ExecutionConfig(), data)

def save_config(config: ExecutionConfig, path: str | Path) -> Path:
    """Write a configuration to a YAML or JSON file.

    The interpreter path and environment are machine specific and are not
    written.

    Returns:
        Path where the config was saved
    """
    path = Path(path)
    data = config.to_dict()
    data.pop("interpreter_path", None)
    data.pop("env", None)

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        if path.suffix in (".yml", ".yaml"):
            yaml.safe_dump(data, f, default_flow_style=False)
        else:
            json.dump(data, f, indent=2)

    logger.info("Config saved", path=path)
    return path
