"""Settings loading and validation for the YAML config file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from stripsync.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Settings:
    service_id: str = "fff0"
    scan_window_s: float = 10.0
    command_timeout_s: float = 0.5
    stale_after_s: float = 1.0
    sample_rate_hz: float = 30.0
    sample_pixels: int = 1000
    exclude_names: tuple[str, ...] = ("iPad", "iPhone", "Mac")
    vendor_keywords: tuple[str, ...] = ("ELK", "LED", "Triones")
    write_char_uuid: str = "0000fff3-0000-1000-8000-00805f9b34fb"
    connect_timeout_s: float = 10.0
    host: str = "127.0.0.1"
    port: int = 3000

    @property
    def sample_interval_s(self) -> float:
        return 1.0 / self.sample_rate_hz


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "stripsync/config.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("stripsync.schemas").joinpath("settings.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def _build_settings(doc: dict[str, Any], source: Path) -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    values: dict[str, Any] = {}
    for key, value in doc.items():
        if key in ("exclude_names", "vendor_keywords"):
            value = tuple(value)
        elif key == "service_id":
            value = value.strip().lower()
        values[key] = value
    return Settings(**values)


def load_settings(path: Path | None = None, **overrides: Any) -> Settings:
    """Load settings from YAML, then apply non-None keyword overrides.

    An explicit ``path`` must exist; the default XDG location is optional.
    """
    config_path = path or default_config_path()
    if path is not None and not config_path.exists():
        raise ConfigError(f"Config file {config_path} does not exist")

    settings = Settings()
    if config_path.exists():
        LOGGER.debug("Loading settings from %s", config_path)
        settings = _build_settings(_read_yaml(config_path), config_path)

    known = {f.name for f in fields(Settings)}
    unknown = set(overrides) - known
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
    applied = {key: value for key, value in overrides.items() if value is not None}
    return replace(settings, **applied) if applied else settings
