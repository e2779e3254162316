from __future__ import annotations

import json
import os
import pathlib
import tempfile
from copy import deepcopy
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from clearmarkup.core.base import ClearMarkupManager
from clearmarkup.utils.exceptions import ConfigurationError

SUPPORTED_DATABASE_TYPES = ('sqlite', 'postgresql', 'mysql', 'mariadb', 'mssql', 'oracle')
LOG_LEVEL_NAMES = ('debug', 'info', 'warning', 'error', 'critical')

Listener = Callable[[str, Any], None]

_MISSING = object()


class AppSettings(BaseModel):
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    name: str = 'ClearMarkup'
    environment: str = 'development'
    debug: bool = False


class DatabaseSettings(BaseModel):
    """Connection settings; ``url`` overrides the individual parts."""
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    type: str = 'sqlite'
    host: str = 'localhost'
    port: Optional[int] = None
    name: str = 'clearmarkup.db'
    user: str = ''
    password: str = ''
    charset: str = 'utf8mb4'
    prefix: str = ''
    url: Optional[str] = None
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_recycle: int = 3600
    echo: bool = False
    slow_query_seconds: float = Field(default=1.0, ge=0)

    @model_validator(mode='after')
    def validate_type(self) -> 'DatabaseSettings':
        if not self.url and self.type.lower() not in SUPPORTED_DATABASE_TYPES:
            raise ValueError(
                f"Unsupported database type '{self.type}'. "
                f"Expected one of: {', '.join(SUPPORTED_DATABASE_TYPES)}."
            )
        return self


def _check_level(level: str) -> str:
    if level.lower() not in LOG_LEVEL_NAMES:
        raise ValueError(f"Unknown logging level '{level}'.")
    return level


class FileLogSettings(BaseModel):
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    enabled: bool = False
    path: str = 'logs/clearmarkup.log'
    rotation: Union[str, int] = '10 MB'
    retention: Union[str, int] = '30 days'


class ConsoleLogSettings(BaseModel):
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    enabled: bool = True
    level: str = 'INFO'

    @field_validator('level')
    @classmethod
    def validate_level(cls, level: str) -> str:
        return _check_level(level)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    level: str = 'INFO'
    format: str = 'json'
    file: FileLogSettings = Field(default_factory=FileLogSettings)
    console: ConsoleLogSettings = Field(default_factory=ConsoleLogSettings)

    @field_validator('level')
    @classmethod
    def validate_level(cls, level: str) -> str:
        return _check_level(level)


class ConfigSchema(BaseModel):
    """The full configuration tree. Unknown keys are kept as they are."""
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    app: AppSettings = Field(default_factory=AppSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class ConfigManager(ClearMarkupManager):
    """Loads, validates and serves the application configuration.

    Values come from :class:`ConfigSchema` defaults, then the YAML or JSON
    file at ``config_path``, then ``CLEARMARKUP_*`` environment variables.
    Keys are addressed with dots (``database.prefix``). Changes made through
    :meth:`set` are validated, announced to listeners registered for the key
    or one of its parents, and written back to the file they came from.
    """

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'CLEARMARKUP_'
    ) -> None:
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path) if config_path else pathlib.Path('config.yaml')
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}
        self._loaded_from_file = False
        self._env_vars_applied: Set[str] = set()
        self._env_paths: Set[Tuple[str, ...]] = set()
        self._pre_env_config: Dict[str, Any] = {}
        self._listeners: Dict[str, List[Listener]] = {}

    def initialize(self) -> None:
        """Build the configuration from defaults, file and environment.

        Raises:
            ManagerInitializationError: If the file cannot be parsed or the
                result does not validate
        """
        try:
            config = ConfigSchema().model_dump()
            file_config = self._read_file()
            if file_config:
                self._merge_config(file_config, config)
                self._loaded_from_file = True
            self._pre_env_config = deepcopy(config)
            self._apply_env_vars(config)
            self._config = self._validated(config)
            self._mark_started()
        except Exception as e:
            raise self._initialization_failed(e) from e

    def set_logger(self, logger: Any) -> None:
        """Take a component logger from the logging manager once it exists."""
        self._logger = logger.get_logger('config_manager')

    def _read_file(self) -> Optional[Dict[str, Any]]:
        """Parse the configuration file, or return None when there is none.

        Raises:
            ConfigurationError: If the file has an unknown suffix or bad syntax
        """
        if not self._config_path.exists():
            return None

        suffix = self._config_path.suffix.lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ConfigurationError(
                f'Unsupported config file format: {self._config_path.suffix}',
                config_key='config_path'
            )

        content = self._config_path.read_text(encoding='utf-8')
        try:
            data = json.loads(content) if suffix == '.json' else yaml.safe_load(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {e}',
                config_key='config_path'
            ) from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(
                f'Config file {self._config_path} must contain a mapping',
                config_key='config_path'
            )
        return data

    def _apply_env_vars(self, config: Dict[str, Any]) -> None:
        """Apply ``CLEARMARKUP_<SECTION>_<KEY>`` variables to ``config``.

        Underscores are grouped back into existing keys where possible, so
        ``CLEARMARKUP_DATABASE_POOL_SIZE`` sets ``database.pool_size``.
        """
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue
            parts = env_name[len(self._env_prefix):].lower().split('_')
            path = self._resolve_env_path(config, parts)
            self._set_nested_value(config, path, self._parse_env_value(env_value))
            self._env_vars_applied.add(env_name)
            if path:
                self._env_paths.add(tuple(path))

    def _resolve_env_path(self, config: Mapping[str, Any], parts: List[str]) -> List[str]:
        for end in range(len(parts), 0, -1):
            key = '_'.join(parts[:end])
            if key not in config:
                continue
            rest = parts[end:]
            if not rest:
                return [key]
            if isinstance(config[key], dict):
                return [key] + self._resolve_env_path(config[key], rest)
        return ['_'.join(parts)] if parts else []

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Turn an environment string into a bool, int or float where it reads as one."""
        lowered = value.lower()
        if lowered in ('true', 'yes', 'on'):
            return True
        if lowered in ('false', 'no', 'off'):
            return False
        for cast in (int, float):
            try:
                return cast(value)
            except ValueError:
                continue
        return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        if not path:
            return
        *parents, leaf = path
        for key in parents:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]
        config[leaf] = value

    @staticmethod
    def _validated(config: Dict[str, Any], key: Optional[str] = None) -> Dict[str, Any]:
        """Validate a configuration tree and return its normalized form.

        Raises:
            ConfigurationError: With every validation problem in the message
        """
        try:
            return ConfigSchema(**config).model_dump()
        except ValidationError as e:
            problems = '; '.join(
                f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(
                f'Invalid configuration: {problems}',
                config_key=key,
                details={'validation_errors': e.errors()}
            ) from e

    def _require_initialized(self, key: str) -> None:
        if not self._initialized:
            raise ConfigurationError('Configuration is not initialized', config_key=key)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at a dotted key, or ``default`` when it is missing.

        Raises:
            ConfigurationError: If called before initialization
        """
        self._require_initialized(key)
        node: Any = self._config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Change the value at a dotted key.

        Raises:
            ConfigurationError: If called before initialization, if the new
                value does not validate or if the file cannot be written
        """
        self._require_initialized(key)
        candidate = deepcopy(self._config)
        self._set_nested_value(candidate, key.split('.'), value)
        self._config = self._validated(candidate, key)
        parts = tuple(key.split('.'))
        self._env_paths = {path for path in self._env_paths if path[:len(parts)] != parts}

        self._notify_listeners(key, value)
        self._save_to_file()

    def _persistable(self) -> Dict[str, Any]:
        """The configuration as it should be written back.

        Values that came from the environment are written as they were before
        the environment was applied, unless ``set()`` has changed them since.
        """
        data = deepcopy(self._config)
        for path in self._env_paths:
            *parents, leaf = path
            original: Any = self._pre_env_config
            for part in path:
                original = original.get(part, _MISSING) if isinstance(original, dict) else _MISSING
            node: Any = data
            for part in parents:
                node = node.get(part) if isinstance(node, dict) else None
            if not isinstance(node, dict):
                continue
            if original is _MISSING:
                node.pop(leaf, None)
            else:
                node[leaf] = deepcopy(original)
        return data

    def _save_to_file(self) -> None:
        """Atomically rewrite the file the configuration was loaded from."""
        if not self._loaded_from_file:
            return

        data = self._persistable()
        config_dir = self._config_path.parent
        config_dir.mkdir(parents=True, exist_ok=True)
        try:
            with tempfile.NamedTemporaryFile(
                    mode='w', delete=False, dir=config_dir, suffix='.tmp', encoding='utf-8'
            ) as tmp:
                if self._config_path.suffix.lower() == '.json':
                    json.dump(data, tmp, indent=2)
                else:
                    yaml.safe_dump(data, tmp, default_flow_style=False)
            os.replace(tmp.name, self._config_path)
        except OSError as e:
            if self._logger:
                self._logger.error(f'Error saving configuration to {self._config_path}: {e}')
            raise ConfigurationError(
                f'Error saving configuration to {self._config_path}: {e}',
                config_key='config_path'
            ) from e

    def _merge_config(self, source: Mapping[str, Any], target: Optional[Dict[str, Any]] = None) -> None:
        """Deep-merge ``source`` into ``target``; None and empty values do not override."""
        if target is None:
            target = self._config
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge_config(value, target[key])
            elif value is not None and value != '' and value != {}:
                target[key] = value

    def register_listener(self, key: str, callback: Listener) -> None:
        """Call ``callback(key, value)`` when ``key`` or anything below it changes."""
        callbacks = self._listeners.setdefault(key, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def unregister_listener(self, key: str, callback: Listener) -> None:
        callbacks = self._listeners.get(key, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._listeners.pop(key, None)

    def _notify_listeners(self, key: str, value: Any) -> None:
        for listener_key, callbacks in list(self._listeners.items()):
            if key != listener_key and not key.startswith(f'{listener_key}.'):
                continue
            for callback in list(callbacks):
                try:
                    callback(key, value)
                except Exception as e:
                    if self._logger:
                        self._logger.error(f'Error in config listener for {key}: {e}')

    def shutdown(self) -> None:
        self._listeners.clear()
        self._mark_stopped()

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'config_file': str(self._config_path) if self._loaded_from_file else None,
            'loaded_from_file': self._loaded_from_file,
            'env_vars_applied': len(self._env_vars_applied),
            'registered_listeners': sum(len(callbacks) for callbacks in self._listeners.values()),
        })
        return status
