"""
Gather core settings provider
"""

import os
import json
import logging
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .schemas import config


CONFIG_PATHS: List[str] = ["config.json", os.path.join("..", "config.json")]
"""
list of search paths for the config file, can be overwritten by the env variable ``CONFIG_PATH``
"""

if os.environ.get("CONFIG_PATH"):
    CONFIG_PATHS = [os.environ.get("CONFIG_PATH")]

ENV_FILE: str = ".env"
"""
local, development-only file holding environment variables (never put it under version control)
"""

_logger = logging.getLogger(__name__)


def get_db_from_env(db_override: Optional[str] = None) -> Optional[str]:
    if db_override:
        return db_override
    return os.environ.get("DATABASE__CONNECTION", os.environ.get("DATABASE_CONNECTION", None))


def find_config_file() -> Optional[str]:
    for path in CONFIG_PATHS:
        if os.path.exists(path):
            return path
    return None


def read_settings_from_file() -> Dict[str, Any]:
    """
    Return the content of the first config file found in the search paths (or nothing)
    """

    path = find_config_file()
    if path is None:
        _logger.debug(f"No config file found in {CONFIG_PATHS!r}, using defaults.")
        return {}
    with open(path, "r", encoding="UTF-8") as file:
        return json.load(file)


class JsonFileSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source reading the JSON config file found by ``find_config_file``
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return read_settings_from_file().get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return read_settings_from_file()


class Settings(BaseSettings, config.CoreConfig):
    """
    Gather core settings

    Do not change most of the settings at runtime, since this might lead to unspecified
    behavior. Always restart the server after changing the config file. The sources are
    evaluated in the order: init arguments, environment variables (use ``__`` as nested
    delimiter, e.g. ``SERVER__APP_SECRET``), the ``.env`` file, the JSON config file.
    Anything missing in all of those sources will be filled up with the defaults.
    """

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=ENV_FILE,
        env_file_encoding="UTF-8",
        extra="ignore"
    )

    @classmethod
    def settings_customise_sources(
            cls,
            settings_cls: Type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,
            file_secret_settings: PydanticBaseSettingsSource
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, env_settings, dotenv_settings, JsonFileSettingsSource(settings_cls), file_secret_settings


def store_configuration(conf: Optional[config.CoreConfig] = None, path: Optional[str] = None) -> config.CoreConfig:
    p = path or os.path.abspath(CONFIG_PATHS[0])
    conf = conf or get_default_core_config(get_db_from_env())
    with open(p, "w", encoding="UTF-8") as f:
        json.dump(conf.model_dump(), f, indent=4)
    _logger.info(f"A new config file has been created as {p!r}.")
    return conf


def get_default_core_config(database_override: Optional[str] = None) -> config.CoreConfig:
    c = config.CoreConfig()
    if database_override:
        c.database.connection = database_override
    return c
