import os
import re
from pathlib import Path
from collections.abc import Mapping
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / 'config.yaml'
CONFIG_PATH_ENV = 'ALERT_RELAY_CONFIG'
# ALERT_RELAY__STORAGE__BACKEND=postgres overrides storage.backend
OVERRIDE_PREFIX = 'ALERT_RELAY__'
ENV_PATTERN = re.compile(r'\$\{([A-Za-z0-9_]+)\}')


def _substitute(text: str) -> str:
    return ENV_PATTERN.sub(lambda m: os.getenv(m.group(1), m.group(0)), text)


def resolve_env_vars(node: Any) -> Any:
    """Replace ``${VAR}`` references anywhere in the tree; unset variables stay literal."""
    if isinstance(node, dict):
        return {key: resolve_env_vars(value) for key, value in node.items()}
    if isinstance(node, list):
        return [resolve_env_vars(item) for item in node]
    if isinstance(node, str) and '${' in node:
        return _substitute(node)
    return node


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Mapping] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    for name, raw in environ.items():
        if not name.startswith(OVERRIDE_PREFIX):
            continue
        path = [part.lower() for part in name[len(OVERRIDE_PREFIX):].split('__') if part]
        if not path:
            continue
        node = data
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        try:
            node[path[-1]] = yaml.safe_load(raw)
        except yaml.YAMLError:
            node[path[-1]] = raw
    return data


class SectionProxy(Mapping):
    def __init__(self, data: Dict[str, Any]):
        self._data = data or {}

    def __getitem__(self, key: str) -> Any:
        value = self._data[key]
        if isinstance(value, dict):
            return SectionProxy(value)
        return value

    def __getattr__(self, name: str) -> Any:
        if name in self.__dict__:
            return super().__getattribute__(name)
        value = self._data.get(name)
        if isinstance(value, dict):
            return SectionProxy(value)
        if value is None:
            raise AttributeError(f"Config key '{name}' not found")
        return value

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key, default)
        if isinstance(value, dict):
            return SectionProxy(value)
        return value

    def to_dict(self) -> Dict[str, Any]:
        return self._data


class Config:
    """YAML settings for the relay, with ``${VAR}`` and ``ALERT_RELAY__`` overrides applied."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(
            config_path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
        )
        self._data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            raise RuntimeError(f"Configuration file not found at {self.config_path}")
        with self.config_path.open('r') as fh:
            try:
                raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise RuntimeError(f"Error parsing YAML configuration: {exc}") from exc
        if not isinstance(raw, dict):
            raise RuntimeError(f"Configuration at {self.config_path} must be a mapping")
        return apply_env_overrides(resolve_env_vars(raw))

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def section(self, name: str) -> Dict[str, Any]:
        value = self._data.get(name)
        return dict(value) if isinstance(value, dict) else {}

    def __getitem__(self, key: str) -> Any:
        value = self._data[key]
        if isinstance(value, dict):
            return SectionProxy(value)
        return value

    def __getattr__(self, name: str) -> Any:
        try:
            value = self._data[name]
        except KeyError as exc:
            raise AttributeError(f"Config key '{name}' not found") from exc
        if isinstance(value, dict):
            return SectionProxy(value)
        return value

    def reload(self) -> None:
        self._data = self._load_config()


config = Config()
