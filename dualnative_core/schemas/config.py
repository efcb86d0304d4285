"""
Special schemas for the configuration file and its properties
"""

from typing import Dict, List, Literal, Optional, Union

import pydantic


class ProfileConfig(pydantic.BaseModel):
    profile: str = "dual-native-core-1.0"
    http_profile: str = "tct-1"
    exclude_fields: List[str] = ["modified", "links", "cid", "etag"]
    catalog_batch_size: pydantic.PositiveInt = 1000
    cache_ttl: pydantic.NonNegativeInt = 300
    validation_timeout: pydantic.PositiveInt = 30
    storage: Literal["memory", "database"] = "database"
    provider: Literal["memory", "database"] = "database"


class ServerConfig(pydantic.BaseModel):
    host: str = "127.0.0.1"
    port: pydantic.conint(gt=0, lt=65536) = 8000
    public_base_url: Optional[pydantic.HttpUrl] = None


class CallbackConfig(pydantic.BaseModel):
    urls: List[pydantic.HttpUrl] = []
    timeout: pydantic.PositiveFloat = 2.0
    shared_secret: Optional[pydantic.constr(max_length=255)] = None


class DatabaseConfig(pydantic.BaseModel):
    connection: str = "sqlite://"
    debug_sql: bool = False


class LoggingConfig(pydantic.BaseModel):
    version: pydantic.conint(ge=1, le=1) = 1
    disable_existing_loggers: bool = False
    incremental: bool = False
    filters: Dict[str, Dict[str, Union[str, list]]] = {
        "urllib3_no_debug": {
            "()": "dualnative_core.misc.logger.NoDebugFilter",
            "name": "urllib3.connectionpool"
        }
    }
    formatters: Dict[str, Dict[str, str]] = {
        "default": {
            "style": "{",
            "format": "{asctime}: Dual-Native {process}: [{levelname}] {name}: {message}",
            "datefmt": "%d.%m.%Y %H:%M:%S"
        },
        "file": {
            "style": "{",
            "format": "{asctime} ({process}): [{levelname}] {name}: {message}",
            "datefmt": "%d.%m.%Y %H:%M"
        },
        "access": {
            "()": "uvicorn.logging.AccessFormatter",
            "fmt": "%(asctime)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"
        }
    }
    loggers: Dict[str, dict] = {}
    handlers: Dict[str, Dict[str, Union[str, list]]] = {
        "default": {
            "level": "INFO",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "default"
        },
        "file": {
            "level": "DEBUG",
            "class": "logging.FileHandler",
            "filename": "./dualnative.log",
            "formatter": "file",
            "filters": ["urllib3_no_debug"]
        },
        "access": {
            "level": "INFO",
            "class": "logging.FileHandler",
            "filename": "./access.log",
            "formatter": "access"
        }
    }
    root: dict = {
        "level": "INFO",
        "handlers": ["default", "file"]
    }


class CoreConfig(pydantic.BaseModel):
    profile: ProfileConfig = pydantic.Field(default_factory=ProfileConfig)
    server: ServerConfig = pydantic.Field(default_factory=ServerConfig)
    callbacks: CallbackConfig = pydantic.Field(default_factory=CallbackConfig)
    database: DatabaseConfig = pydantic.Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = pydantic.Field(default_factory=LoggingConfig)

    @pydantic.field_validator("profile")
    @classmethod
    def enforce_profile_constraints(cls, value: ProfileConfig) -> ProfileConfig:
        if len(set(value.exclude_fields)) != len(value.exclude_fields):
            raise ValueError("Field 'exclude_fields' must not contain duplicates")
        return value
