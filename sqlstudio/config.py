"""
Configuration management for sqlstudio.

Loads config.yaml from the sqlstudio home directory:

    $SQLSTUDIO_HOME/config.yaml   (default ~/.config/sqlstudio/config.yaml)

Example:

    data_dir: ~/sqlstudio/data
    env_file: ~/.config/sqlstudio/.env
    sqlserver:
      host: mssql.internal
      database: datamart
      user: studio
      password_env: SQLSERVER_PASSWORD
    redshift:
      host: cluster.abc.eu-west-1.redshift.amazonaws.com
      port: 5439
      database: analytics
      user: studio
      password_env: REDSHIFT_PASSWORD
    logging:
      level: INFO
      format: structured
      file: ~/.config/sqlstudio/logs/sqlstudio.log
    progress_queue_size: 1000
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

LOG_FORMATS = ("structured", "pretty")


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def get_studio_home() -> Path:
    """Directory holding config.yaml ($SQLSTUDIO_HOME or ~/.config/sqlstudio)."""
    return Path(os.environ.get("SQLSTUDIO_HOME", "~/.config/sqlstudio")).expanduser()


@dataclass
class ConnectionConfig:
    """Connection settings for one database backend."""
    host: str
    database: str
    user: str
    port: Optional[int] = None
    password: Optional[str] = None
    password_env: Optional[str] = None

    def resolve_password(self) -> Optional[str]:
        """Literal password, or the value of password_env."""
        if self.password is not None:
            return self.password
        if self.password_env:
            value = os.environ.get(self.password_env)
            if value is None:
                raise ConfigError(f"Environment variable {self.password_env} is not set")
            return value
        return None

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "ConnectionConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"{name}: expected a mapping")
        missing = [key for key in ("host", "database", "user") if not data.get(key)]
        if missing:
            raise ConfigError(f"{name}: missing {', '.join(missing)}")
        port = data.get("port")
        try:
            port = int(port) if port is not None else None
        except (TypeError, ValueError):
            raise ConfigError(f"{name}: invalid port {port!r}") from None
        return cls(
            host=data["host"],
            database=data["database"],
            user=data["user"],
            port=port,
            password=data.get("password"),
            password_env=data.get("password_env"),
        )


@dataclass
class StudioConfig:
    """Complete sqlstudio configuration."""
    data_dir: Path
    sqlserver: Optional[ConnectionConfig] = None
    redshift: Optional[ConnectionConfig] = None
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file: Optional[Path] = None
    progress_queue_size: int = 1000
    env_file: Optional[Path] = None
    config_path: Optional[Path] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any], home: Path) -> "StudioConfig":
        """
        Build and validate a config from parsed YAML.

        Relative paths are resolved against the home directory.

        Raises:
            ConfigError: On invalid values
        """
        def _path(value: Optional[str]) -> Optional[Path]:
            if not value:
                return None
            path = Path(value).expanduser()
            return path if path.is_absolute() else home / path

        logging_cfg = data.get("logging") or {}
        if not isinstance(logging_cfg, dict):
            raise ConfigError("logging: expected a mapping")

        log_level = str(logging_cfg.get("level", "INFO")).upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"logging.level: invalid level {log_level!r}")

        log_format = logging_cfg.get("format", "structured")
        if log_format not in LOG_FORMATS:
            raise ConfigError(
                f"logging.format: expected one of {', '.join(LOG_FORMATS)}, got {log_format!r}"
            )

        queue_size = data.get("progress_queue_size", 1000)
        if not isinstance(queue_size, int) or queue_size < 1:
            raise ConfigError(f"progress_queue_size: expected a positive integer, got {queue_size!r}")

        sqlserver = data.get("sqlserver")
        redshift = data.get("redshift")
        return cls(
            data_dir=_path(data.get("data_dir")) or home / "data",
            sqlserver=ConnectionConfig.from_dict("sqlserver", sqlserver) if sqlserver else None,
            redshift=ConnectionConfig.from_dict("redshift", redshift) if redshift else None,
            log_level=log_level,
            log_format=log_format,
            log_file=_path(logging_cfg.get("file")) or home / "logs" / "sqlstudio.log",
            progress_queue_size=queue_size,
            env_file=_path(data.get("env_file")),
        )


def load_config(config_path: Optional[Path] = None) -> StudioConfig:
    """
    Load sqlstudio configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to config.yaml in the
            sqlstudio home directory

    Returns:
        StudioConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is invalid
    """
    if config_path is None:
        config_path = get_studio_home() / "config.yaml"
    config_path = Path(config_path).expanduser()

    if not config_path.exists():
        raise FileNotFoundError(
            f"sqlstudio config.yaml not found at {config_path}. "
            f"Run 'sqlstudio init' or set SQLSTUDIO_HOME."
        )

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}") from e

    if not raw:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must contain a mapping")

    config = StudioConfig.from_dict(raw, home=config_path.parent)
    config.config_path = config_path

    # Must run before ConnectionConfig.resolve_password
    if config.env_file is not None and config.env_file.exists():
        load_dotenv(config.env_file, override=False)

    return config
