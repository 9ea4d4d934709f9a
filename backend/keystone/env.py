"""
Keystone — Environment Accessor
================================

What:  Typed reads of process environment variables with static defaults.
How:   `Environment.get(key, default, coerce)` returns the default when the
       variable is unset, the raw string when no coercion is requested, and
       otherwise the coerced value. A coercion that fails raises
       ConfigurationError naming the variable and the offending value.
Who:   Used by the config registry (runtime flags, env-file selection) and
       anywhere a single variable must be read before settings are built.
When:  Once at startup. Components receive the resulting values through the
       config registry and never read os.environ themselves.

Coercion rules:
    number   "3000" → 3000, "0.5" → 0.5; "abc", "nan", "inf" → error
    boolean  parsed as JSON, then truthiness: "true"/"1" → True,
             "false"/"0"/"null" → False; "yes" (not JSON) → error
"""

import json
import math
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from keystone.exceptions import ConfigurationError

T = TypeVar("T")

Number = Union[int, float]


def parse_number(value: str) -> Number:
    """Parse an integer or finite float from an environment string."""
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"{value!r} is not a finite number")
    return number


def parse_boolean(value: str) -> bool:
    """Parse a JSON literal and return its truthiness."""
    return bool(json.loads(value))


class Environment:
    """
    Read-only view over an environment mapping.

    Args:
        environ: Mapping to read from. Defaults to os.environ, looked up at
                 call time so monkeypatched variables are visible in tests.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def get(
        self,
        key: str,
        default: Any = None,
        coerce: Optional[Callable[[str], T]] = None,
    ) -> Any:
        value = self.environ.get(key)
        if value is None:
            return default
        if coerce is None:
            return value
        try:
            return coerce(value)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                f"{key} environment variable is not valid: {exc}",
                key=key,
                value=value,
            ) from exc

    def string(self, key: str, default: str = "") -> str:
        return self.get(key, default)

    def number(self, key: str, default: Optional[Number] = 0) -> Optional[Number]:
        try:
            return self.get(key, default, parse_number)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"{key} environment variable is not a number",
                key=key,
                value=exc.value,
            ) from exc.__cause__

    def boolean(self, key: str, default: bool = False) -> bool:
        try:
            return self.get(key, default, parse_boolean)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"{key} environment variable is not a boolean",
                key=key,
                value=exc.value,
            ) from exc.__cause__

    def __contains__(self, key: str) -> bool:
        return key in self.environ


# Process-wide accessor and function shortcuts
environment = Environment()


def env(key: str, default: str = "") -> str:
    return environment.string(key, default)


def env_string(key: str, default: str = "") -> str:
    return environment.string(key, default)


def env_number(key: str, default: Optional[Number] = 0) -> Optional[Number]:
    return environment.number(key, default)


def env_boolean(key: str, default: bool = False) -> bool:
    return environment.boolean(key, default)


# ══════════════════════════════════════════════════════════════════════════
# Runtime Flags
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RuntimeFlags:
    """
    Process-level flags resolved once at startup.

    Attributes:
        environment:      APP_ENV value ("development", "production", ...)
        is_dev:           True when APP_ENV is "development"
        is_test:          True when TEST is set to any non-empty value
        instance:         Worker index assigned by the process supervisor
                          (APP_INSTANCE), None for a single process
        is_primary:       Supervisor-declared primary (IS_PRIMARY_PROCESS)
        is_main_process:  Designated process for singleton startup logs
        cwd:              Working directory at startup
    """

    environment: str = "production"
    is_dev: bool = False
    is_test: bool = False
    instance: Optional[int] = None
    is_primary: bool = True
    cwd: str = ""

    @property
    def is_main_process(self) -> bool:
        return self.is_primary or self.instance == 0

    @classmethod
    def from_env(cls, source: Optional[Environment] = None) -> "RuntimeFlags":
        source = source or environment
        name = source.string("APP_ENV", "production")
        instance = source.number("APP_INSTANCE", None)
        if instance is not None:
            instance = int(instance)
        return cls(
            environment=name,
            is_dev=name == "development",
            is_test=bool(source.string("TEST")),
            instance=instance,
            # A supervisor running several workers marks them non-primary
            # unless it also assigns instance indices.
            is_primary=source.boolean("IS_PRIMARY_PROCESS", instance is None),
            cwd=os.getcwd(),
        )
