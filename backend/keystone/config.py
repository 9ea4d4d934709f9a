"""
Keystone — Application Configuration
======================================

What:  Named configuration sections assembled from environment variables and
       a registry that exposes them through dotted-path lookup.
How:   Each section is a frozen pydantic-settings model. `load_config()`
       builds every section once, converts validation failures into
       ConfigurationError and registers the results in a ConfigRegistry.
Who:   create_app() loads the registry and passes it to every component.
When:  Once at process start; sections are immutable afterwards.

Sections:
    app      APP_NAME, APP_PORT, APP_BASE_URL, GLOBAL_PREFIX, APP_LOCALE,
             logger (LOGGER_LEVEL, LOGGER_MAX_FILES, LOGGER_DIR)
    swagger  SWAGGER_ENABLE, SWAGGER_PATH, SWAGGER_SERVER_URL
    runtime  APP_ENV, TEST, APP_INSTANCE, IS_PRIMARY_PROCESS

Env files:
    `.env.<APP_ENV>` then `.env`; values in `.env` win over the
    environment-specific file, real environment variables win over both.
"""

import dataclasses
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Type

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from keystone.env import Environment, RuntimeFlags, parse_boolean
from keystone.exceptions import ConfigurationError

LOG_LEVELS = ("error", "warn", "info", "debug", "verbose")


class LoggerSettings(BaseSettings):
    """Severity threshold and retention for the logging service."""

    level: str = Field(default="info", description="Minimum severity written to sinks")

    # 0 keeps every rotated file
    max_files: int = Field(default=0, ge=0, description="Rotated files kept per sink")

    directory: str = Field(
        default="logs",
        validation_alias="LOGGER_DIR",
        description="Directory holding rotated log files",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOGGER_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        lower = (v or "info").strip().lower()
        if lower == "warning":
            lower = "warn"
        if lower not in LOG_LEVELS:
            raise ValueError(f"Invalid log level '{v}'. Must be one of: {', '.join(LOG_LEVELS)}")
        return lower


class AppSettings(BaseSettings):
    """
    Application settings.

    Attributes:
        name:           Display name, used as the OpenAPI title
        port:           Listening port
        base_url:       Public base URL of the service
        global_prefix:  Path prefix applied to every API route
        locale:         Locale for user-facing messages (zh-CN, en-US)
        logger:         Logging service settings
    """

    name: str = Field(default="")
    # Fixed port only: the startup line logs it as the bound address
    port: int = Field(default=3000, ge=1, le=65535)
    base_url: str = Field(default="")
    global_prefix: str = Field(default="api", validation_alias="GLOBAL_PREFIX")
    locale: str = Field(default="zh-CN")
    logger: LoggerSettings = Field(default_factory=LoggerSettings)

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("global_prefix")
    @classmethod
    def strip_prefix_slashes(cls, v: str) -> str:
        return v.strip().strip("/")


class SwaggerSettings(BaseSettings):
    """Feature flag and mount path for the OpenAPI document."""

    enable: bool = Field(default=False)
    path: str = Field(default="api-docs")
    server_url: str = Field(
        default="",
        validation_alias=AliasChoices("SWAGGER_SERVER_URL", "APP_BASE_URL"),
    )

    model_config = SettingsConfigDict(
        env_prefix="SWAGGER_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("enable", mode="before")
    @classmethod
    def parse_enable(cls, v: Any) -> Any:
        # Same JSON literal rules as Environment.boolean: "yes" or "on" fail
        if isinstance(v, str):
            return parse_boolean(v)
        return v

    @field_validator("path")
    @classmethod
    def strip_path_slashes(cls, v: str) -> str:
        path = v.strip().strip("/")
        if not path:
            raise ValueError("SWAGGER_PATH must not be empty")
        return path


# ══════════════════════════════════════════════════════════════════════════
# Registry
# ══════════════════════════════════════════════════════════════════════════

_MISSING = object()


def _child(node: Any, part: str) -> Any:
    """
    One step of a dotted lookup.

    Only declared values are reachable: mapping keys, pydantic model fields,
    and dataclass fields or properties. Methods and private names are not.
    """
    if part.startswith("_"):
        return _MISSING
    if isinstance(node, Mapping):
        return node.get(part, _MISSING)
    if isinstance(node, BaseModel):
        return getattr(node, part) if part in type(node).model_fields else _MISSING
    if dataclasses.is_dataclass(node) and not isinstance(node, type):
        declared = {field.name for field in dataclasses.fields(node)}
        if part in declared or isinstance(getattr(type(node), part, None), property):
            return getattr(node, part)
    return _MISSING


class ConfigRegistry:
    """
    Named configuration sections with dotted-path lookup.

    Sections are registered exactly once; a second registration under the
    same name raises ConfigurationError. `get("app.logger.level")` walks
    declared fields (or mapping keys) and returns `default` (None) for any
    path that was never registered.
    """

    def __init__(self) -> None:
        self._sections: Dict[str, Any] = {}

    def register(self, name: str, section: Any) -> None:
        if name in self._sections:
            raise ConfigurationError(
                f"Configuration section '{name}' is already registered",
                key=name,
            )
        self._sections[name] = section

    def section(self, name: str) -> Any:
        return self._sections.get(name)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._sections)

    def get(self, path: str, default: Any = None) -> Any:
        head, *rest = path.split(".")
        node = self._sections.get(head, _MISSING)
        for part in rest:
            if node is _MISSING:
                break
            node = _child(node, part)
        return default if node is _MISSING else node

    def __contains__(self, name: str) -> bool:
        return name in self._sections

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    # ── Typed accessors ───────────────────────────────────────────────────

    @property
    def app(self) -> AppSettings:
        return self._sections["app"]

    @property
    def swagger(self) -> SwaggerSettings:
        return self._sections["swagger"]

    @property
    def runtime(self) -> RuntimeFlags:
        return self._sections["runtime"]


def _env_name(model: Type[BaseSettings], field: str) -> str:
    """Environment variable name a settings field is read from."""
    info = model.model_fields.get(field)
    if info is None:
        # Errors on aliased fields are reported under the alias itself
        return field.upper()
    alias = info.validation_alias
    if isinstance(alias, str):
        return alias
    if isinstance(alias, AliasChoices):
        return str(alias.choices[0])
    prefix = model.model_config.get("env_prefix", "")
    return f"{prefix}{field}".upper()


def _build(model: Type[BaseSettings], env_files: Optional[Sequence[str]], **values: Any):
    try:
        return model(_env_file=env_files, **values)
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else ""
        key = _env_name(model, field) if field else model.__name__
        raw = error.get("input")
        raise ConfigurationError(
            f"{key} environment variable is not valid: {error['msg']}",
            key=key,
            value=None if raw is None or isinstance(raw, dict) else str(raw),
        ) from exc


def load_config(
    env_files: Optional[Sequence[str]] = None,
    source: Optional[Environment] = None,
) -> ConfigRegistry:
    """
    Build and register every configuration section.

    Args:
        env_files:  Dotenv files to read. Defaults to `.env.<APP_ENV>` and
                    `.env`; pass an empty tuple to read only the environment.
        source:     Environment accessor for runtime flags.

    Raises:
        ConfigurationError: Any value fails coercion or validation.
    """
    runtime = RuntimeFlags.from_env(source)
    if env_files is None:
        env_files = (f".env.{runtime.environment}", ".env")

    logger_settings = _build(LoggerSettings, env_files)
    registry = ConfigRegistry()
    registry.register("app", _build(AppSettings, env_files, logger=logger_settings))
    registry.register("swagger", _build(SwaggerSettings, env_files))
    registry.register("runtime", runtime)
    return registry
