"""Layered TOML configuration for Chatline.

A deployment keeps its configuration in one directory:

    config/default.toml            base layer, required
    config/{CHATLINE_ENV}.toml     environment layer, optional

Each layer is checked against the Settings section models as it is read,
so a bad value is reported together with the file that set it. Tables
with no Settings counterpart are logged and dropped. CHATLINE_* variables
are applied on top of the merged layers by Settings itself.
"""

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from chatline.config.settings import Settings
from chatline.errors import ConfigurationError
from chatline.observability.logging import get_logger

logger = get_logger(__name__)

ENVIRONMENT_VAR = "CHATLINE_ENV"
CONFIG_DIR_VAR = "CHATLINE_CONFIG_DIR"
DEFAULT_ENVIRONMENT = "development"
BASE_LAYER = "default.toml"

# Directories above the working directory searched for config/default.toml
SEARCH_DEPTH = 5

# Environment names become file names
_ENVIRONMENT_NAME = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@dataclass(frozen=True)
class ConfigLayer:
    """One TOML file that contributed to the configuration."""

    name: str
    path: Path
    values: dict[str, Any]


@dataclass
class LoadedConfig:
    """Merged configuration and the layers it came from, base first."""

    environment: str
    layers: list[ConfigLayer] = field(default_factory=list)
    values: dict[str, Any] = field(default_factory=dict)

    @property
    def sources(self) -> list[str]:
        return [layer.name for layer in self.layers]


def get_config_dir() -> Path:
    """Locate the configuration directory.

    CHATLINE_CONFIG_DIR wins when set and must exist. Otherwise the nearest
    config/ holding a default.toml, from the working directory upwards.
    """
    override = os.environ.get(CONFIG_DIR_VAR)
    if override:
        path = Path(override)
        if not path.is_dir():
            raise FileNotFoundError(f"Config directory not found: {override}")
        return path

    current = Path.cwd()
    for directory in [current, *current.parents][:SEARCH_DEPTH]:
        candidate = directory / "config"
        if (candidate / BASE_LAYER).is_file():
            return candidate
    return Path("config")


def get_environment() -> str:
    """Deployment environment named by CHATLINE_ENV, normalized to lower case.

    Raises:
        ConfigurationError: The name cannot be used as a layer file name
    """
    name = os.environ.get(ENVIRONMENT_VAR, "").strip().lower() or DEFAULT_ENVIRONMENT
    if not _ENVIRONMENT_NAME.match(name):
        raise ConfigurationError(f"Invalid {ENVIRONMENT_VAR} value: {name!r}")
    return name


def section_models() -> dict[str, type[BaseModel]]:
    """Settings fields that are whole sections, keyed by table name."""
    return {
        name: info.annotation
        for name, info in Settings.model_fields.items()
        if isinstance(info.annotation, type) and issubclass(info.annotation, BaseModel)
    }


def read_layer(path: Path) -> ConfigLayer:
    """Read and check one layer file.

    Raises:
        FileNotFoundError: The file does not exist
        ConfigurationError: Invalid TOML, or a section value the section
            model rejects
    """
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    try:
        with path.open("rb") as f:
            values = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"{path.name}: invalid TOML: {e}") from e
    return check_layer(ConfigLayer(name=path.name, path=path, values=values))


def check_layer(layer: ConfigLayer) -> ConfigLayer:
    """Drop unknown keys and validate each section on its own.

    Sections are partial in an environment layer, so each table is
    validated against its model with the model defaults filling the gaps.
    """
    known = {key: value for key, value in layer.values.items() if key in Settings.model_fields}
    unknown = sorted(set(layer.values) - set(known))
    if unknown:
        logger.warning("config_unknown_keys", layer=layer.name, keys=unknown)

    for name, model in section_models().items():
        if name not in known:
            continue
        section = known[name]
        if not isinstance(section, dict):
            raise ConfigurationError(f"{layer.name}: [{name}] must be a table")
        try:
            model.model_validate(section)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in (name, *first["loc"]))
            raise ConfigurationError(f"{layer.name}: {location}: {first['msg']}") from e

    return ConfigLayer(name=layer.name, path=layer.path, values=known)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base; tables merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_dir: Path | None = None,
    environment: str | None = None,
) -> LoadedConfig:
    """Read the base layer and the environment layer, if any, and merge them.

    Args:
        config_dir: Directory to read (located with get_config_dir by default)
        environment: Environment name (CHATLINE_ENV by default)

    Raises:
        FileNotFoundError: No default.toml in the configuration directory
        ConfigurationError: A layer failed its checks
    """
    directory = config_dir or get_config_dir()
    env = environment or get_environment()

    base_path = directory / BASE_LAYER
    if not base_path.is_file():
        raise FileNotFoundError(
            f"Default configuration file not found: {base_path}. "
            f"Create config/{BASE_LAYER} or set {CONFIG_DIR_VAR}."
        )

    paths = [base_path]
    env_path = directory / f"{env}.toml"
    if env_path != base_path and env_path.is_file():
        paths.append(env_path)

    loaded = LoadedConfig(environment=env)
    for path in paths:
        layer = read_layer(path)
        loaded.layers.append(layer)
        loaded.values = deep_merge(loaded.values, layer.values)

    logger.debug("config_loaded", environment=env, sources=loaded.sources)
    return loaded
