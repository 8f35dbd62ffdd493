"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides for secrets
- Configuration initialization and display
"""

import os
import shlex
from pathlib import Path
from typing import Optional, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbsync.core.exceptions import ConfigurationError
from dbsync.core.validation import validate_name, validate_packet_size, validate_port


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/dbsync/config.yaml")

# Default mysqldump packet sizes per engine
DEFAULT_MAX_ALLOWED_PACKET = {
    "mysql": "64M",
    "mariadb": "256M",
}


class ConnectionProfile(BaseModel):
    """Connection parameters for one database.

    Used both for the remote source (as seen from the SSH host) and for
    local import targets. Frozen for the duration of a run.
    """

    model_config = ConfigDict(frozen=True)

    driver: str = "mysql"
    host: str = "127.0.0.1"
    port: Optional[int] = None
    username: str = ""
    password: str = ""
    database: str = ""

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        return validate_port(v)

    @field_validator("database")
    @classmethod
    def validate_database(cls, v: str) -> str:
        if v:
            validate_name(v, "database")
        return v

    def missing_fields(
        self,
        require_password: bool = True,
        require_port: bool = True,
    ) -> list[str]:
        """Names of required fields that are empty."""
        required = {"host": self.host}
        if require_port:
            required["port"] = self.port
        required["username"] = self.username
        required["database"] = self.database
        if require_password:
            required["password"] = self.password
        return [name for name, value in required.items() if value in (None, "")]


class DumpOptions(BaseModel):
    """Engine-specific dump tuning, resolved once per run."""

    model_config = ConfigDict(frozen=True)

    max_allowed_packet: Optional[str] = None
    keep_definers: bool = False
    remove_database_qualifier: Optional[str] = None
    tables_no_data: tuple[str, ...] = ()

    @field_validator("max_allowed_packet")
    @classmethod
    def validate_max_allowed_packet(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_packet_size(str(v))

    @field_validator("remove_database_qualifier")
    @classmethod
    def validate_qualifier(cls, v: Optional[str]) -> Optional[str]:
        if v:
            validate_name(v, "database qualifier")
        return v or None

    @field_validator("tables_no_data")
    @classmethod
    def validate_tables(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(validate_name(table, "table") for table in v)


class SSHConfig(BaseModel):
    """Remote SSH server configuration."""

    host: Optional[str] = None
    port: int = 22
    user: Optional[str] = "root"
    password: Optional[str] = None
    key: Optional[Path] = None
    timeout: int = 300

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return validate_port(v)

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty.

        Either a password or a private key is required.
        """
        missing = [
            name
            for name, value in (("host", self.host), ("port", self.port), ("user", self.user))
            if value in (None, "")
        ]
        if not self.password and not self.key:
            missing.append("password or key")
        return missing


class RemoteDatabaseConfig(BaseModel):
    """Remote database connection, as reachable from the SSH host."""

    host: str = "127.0.0.1"
    port: int = 3306
    name: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    max_allowed_packet: Optional[str] = None
    tables_no_data: list[str] = Field(default_factory=list)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return validate_port(v)

    @field_validator("max_allowed_packet")
    @classmethod
    def validate_max_allowed_packet(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_packet_size(str(v))

    @field_validator("tables_no_data")
    @classmethod
    def validate_tables(cls, v: list[str]) -> list[str]:
        return [validate_name(table, "table") for table in v]

    def to_profile(self, driver: str) -> ConnectionProfile:
        """Build the source connection profile for the given engine."""
        return ConnectionProfile(
            driver=driver,
            host=self.host,
            port=self.port,
            username=self.user or "",
            password=self.password or "",
            database=self.name or "",
        )


class EngineDumpOptions(BaseModel):
    """Per-engine dump option overrides."""

    mysql: DumpOptions = Field(default_factory=DumpOptions)
    mariadb: DumpOptions = Field(default_factory=DumpOptions)
    pgsql: DumpOptions = Field(default_factory=DumpOptions)

    def for_engine(self, engine: str) -> DumpOptions:
        """Get dump options for an engine, with packet size defaults applied."""
        options = getattr(self, engine, None) or DumpOptions()
        if options.max_allowed_packet is None and engine in DEFAULT_MAX_ALLOWED_PACKET:
            options = options.model_copy(
                update={"max_allowed_packet": DEFAULT_MAX_ALLOWED_PACKET[engine]}
            )
        return options


class BinConfig(BaseModel):
    """Client binaries, overridable when not on PATH."""

    model_config = ConfigDict(frozen=True)

    mysql: str = "mysql"
    mysqldump: str = "mysqldump"
    pg_dump: str = "pg_dump"
    pg_restore: str = "pg_restore"
    psql: str = "psql"
    pv: str = "pv"


class HookSetConfig(BaseModel):
    """A list of hook identifiers with an enabled flag."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    scripts: tuple[str, ...] = ()


class MigrationsConfig(BaseModel):
    """Command that applies pending schema migrations after import."""

    model_config = ConfigDict(frozen=True)

    command: Optional[tuple[str, ...]] = None
    cwd: Optional[Path] = None

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(shlex.split(v)) or None
        return v


class SyncSettings(BaseModel):
    """Root configuration model.

    This is the main configuration loaded from /etc/dbsync/config.yaml.
    Passwords may be left out and supplied through environment variables.
    """

    environment: str = "development"

    default_connection: str = "default"
    connections: dict[str, ConnectionProfile] = Field(default_factory=dict)

    ssh: SSHConfig = Field(default_factory=SSHConfig)
    database: RemoteDatabaseConfig = Field(default_factory=RemoteDatabaseConfig)
    dump_options: EngineDumpOptions = Field(default_factory=EngineDumpOptions)
    bin: BinConfig = Field(default_factory=BinConfig)

    post_dump_scripts: HookSetConfig = Field(default_factory=HookSetConfig)
    post_scripts: HookSetConfig = Field(default_factory=HookSetConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid_envs = {"development", "staging", "production"}
        if v not in valid_envs:
            raise ValueError(f"Environment must be one of: {sorted(valid_envs)}")
        return v

    def connection(self, name: str) -> ConnectionProfile:
        """Look up a local connection profile by name.

        Raises:
            ConfigurationError: If the connection is not configured
        """
        try:
            return self.connections[name]
        except KeyError:
            raise ConfigurationError(
                f"Connection '{name}' is not configured",
                hint="Add it under 'connections' in the configuration file",
                details=[f"Known connections: {', '.join(sorted(self.connections)) or 'none'}"],
            ) from None

    @classmethod
    def load(cls, path: Path) -> "SyncSettings":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: dbsync config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "SyncSettings":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string with passwords masked."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(_mask_passwords(data), default_flow_style=False, sort_keys=False)


def _mask_passwords(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            k: ("********" if k == "password" and v else _mask_passwords(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_mask_passwords(v) for v in data]
    return data


class SecretsConfig(BaseSettings):
    """Secrets loaded from environment variables.

    These override the values in the config file when set.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ssh_password: Optional[str] = Field(None, alias="SYNC_SSH_PASSWORD")
    database_password: Optional[str] = Field(None, alias="SYNC_DATABASE_PASSWORD")


class AppConfig:
    """Application configuration combining config file and secrets.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[SyncSettings] = None,
        secrets: Optional[SecretsConfig] = None,
    ) -> None:
        """Initialize application configuration.

        Args:
            config_path: Path to config file (uses default if None)
            config: Pre-loaded config (skips file loading if provided)
            secrets: Pre-loaded secrets (reads the environment if None)
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._secrets = secrets if secrets is not None else SecretsConfig()
        self._config = _apply_secrets(
            config or SyncSettings.load_or_default(self.config_path),
            self._secrets,
        )

    @property
    def config(self) -> SyncSettings:
        """Get the sync configuration."""
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        """Get the secrets configuration."""
        return self._secrets

    @property
    def ssh(self) -> SSHConfig:
        """Shortcut to SSH config."""
        return self._config.ssh

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self._config.environment == "production"


def _apply_secrets(config: SyncSettings, secrets: SecretsConfig) -> SyncSettings:
    """Overlay environment-provided passwords onto the loaded config."""
    if secrets.ssh_password:
        config = config.model_copy(update={
            "ssh": config.ssh.model_copy(update={"password": secrets.ssh_password}),
        })
    if secrets.database_password:
        config = config.model_copy(update={
            "database": config.database.model_copy(update={"password": secrets.database_password}),
        })
    return config


def get_example_config() -> str:
    """Generate example configuration file content."""
    return """# Database Sync Configuration
# Passwords can be supplied via SYNC_SSH_PASSWORD / SYNC_DATABASE_PASSWORD

environment: development  # development, staging, production

# Local databases the dump can be imported into
default_connection: default
connections:
  default:
    driver: mysql  # mysql, mariadb, pgsql
    host: 127.0.0.1
    port: 3306
    username: app
    password: secret
    database: app

# Remote server
ssh:
  host: prod.example.com
  port: 22
  user: deploy
  key: /home/me/.ssh/id_ed25519
  timeout: 300

# Remote database, as reachable from the SSH host
database:
  host: 127.0.0.1
  port: 3306
  name: app
  user: app
  # tables dumped without their rows
  tables_no_data:
    - sessions
    - audit_log

dump_options:
  mysql:
    max_allowed_packet: 64M
    keep_definers: false
  mariadb:
    max_allowed_packet: 256M
    remove_database_qualifier: null

# Client binary overrides
bin:
  mysql: mysql
  mysqldump: mysqldump
  pg_dump: pg_dump
  pg_restore: pg_restore
  pv: pv

# Hooks are "package.module:callable"; post dump hooks receive the dump path
post_dump_scripts:
  enabled: false
  scripts: []
post_scripts:
  enabled: false
  scripts: []

migrations:
  command: alembic upgrade head
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())

    # Holds passwords
    os.chmod(path, 0o600)
