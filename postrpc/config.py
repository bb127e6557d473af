"""Client and server configuration."""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .utils.errors import ConfigurationError

DEFAULT_PORT = 3000

ENV_PREFIX = "POSTRPC_"

ConfigT = TypeVar("ConfigT", bound="BaseConfig")


def _default_logger() -> logging.Logger:
    return logging.getLogger("postrpc.server")


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class TLSOptions(BaseModel):
    """TLS parameters.

    The server uses certfile/keyfile/password (and ca_certs to verify client
    certificates); the client uses ca_certs and verify.
    """

    model_config = ConfigDict(frozen=True)

    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    password: Optional[str] = None
    ca_certs: Optional[str] = None
    verify: bool = True


class BaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    port: int = DEFAULT_PORT
    tls: bool = False
    tls_options: Optional[TLSOptions] = None

    @property
    def scheme(self) -> str:
        return "https" if self.tls else "http"

    @classmethod
    def _env_values(cls) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if os.getenv(f"{ENV_PREFIX}HOST"):
            values["host"] = os.getenv(f"{ENV_PREFIX}HOST")
        if os.getenv(f"{ENV_PREFIX}PORT"):
            values["port"] = os.getenv(f"{ENV_PREFIX}PORT")
        if os.getenv(f"{ENV_PREFIX}TLS"):
            values["tls"] = _env_flag(os.getenv(f"{ENV_PREFIX}TLS", ""))

        tls_options = {
            key: os.getenv(f"{ENV_PREFIX}{key.upper()}")
            for key in ("certfile", "keyfile", "ca_certs")
            if os.getenv(f"{ENV_PREFIX}{key.upper()}")
        }
        if tls_options:
            values["tls_options"] = tls_options
        return values

    def with_overrides(self: ConfigT, **overrides: Any) -> ConfigT:
        """Return a validated copy with the given fields replaced."""
        if not overrides:
            return self
        try:
            return type(self).model_validate({**dict(self), **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {type(self).__name__} override: {e}") from e

    @classmethod
    def from_env(cls: Type[ConfigT], **overrides: Any) -> ConfigT:
        """Build a config from POSTRPC_* environment variables.

        Keyword overrides win over the environment.
        """
        values = cls._env_values()
        values.update(overrides)
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {cls.__name__} from environment: {e}") from e


class ServerConfig(BaseConfig):
    """Server settings. ``host=None`` binds all interfaces."""

    host: Optional[str] = None
    logger: logging.Logger = Field(default_factory=_default_logger)
    log_level: str = "info"


class ClientConfig(BaseConfig):
    """Client settings. ``timeout=None`` means no deadline."""

    host: str = "localhost"
    timeout: Optional[float] = None


def load_config(
    path: Union[str, Path], section: str, config_cls: Type[ConfigT]
) -> ConfigT:
    """Load one section of a YAML config file.

    Example file:
        server:
          port: 8443
          tls: true
          tls_options:
            certfile: cert.pem
            keyfile: key.pem
        client:
          host: rpc.internal
          port: 8443
          tls: true
    """
    try:
        with open(path) as f:
            document = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(document, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    values = document.get(section) or {}
    try:
        return config_cls.model_validate(values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid '{section}' section in {path}: {e}") from e
