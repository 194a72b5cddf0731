"""Configuration management module.

This module handles persistent launch configuration stored as TOML, and
turns it into the immutable LaunchConfiguration a single launch reads.

Lookup order:
1. Explicit path (--config)
2. <project>/.rdlaunch.toml
3. ~/.rdlaunch/config.toml

Security:
- Config file permissions: 0600 (owner read/write only)
- Insecure SSH key permissions are reported
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for older Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

from rdlaunch.exceptions import RdlaunchError
from rdlaunch.ssh.connection import SSHTarget

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = ".rdlaunch.toml"

# TOML section for each RdlaunchConfig field
SECTIONS = {
    "prerun_commands": "launch",
    "remote_workspace": "launch",
    "gdb_path": "launch",
    "host": "remote",
    "user": "remote",
    "key_path": "remote",
    "port": "remote",
    "separator": "remote",
    "encoding": "remote",
}


class ConfigError(RdlaunchError):
    """Raised when configuration operations fail."""

    pass


@dataclass(frozen=True)
class LaunchConfiguration:
    """Attributes of one launch request. Read-only."""

    project_root: Path
    prerun_commands: str = ""
    remote_workspace: str = ""
    gdb_path: str = "gdb"
    host: str = ""
    user: str = ""
    key_path: Path | None = None
    port: int = 22
    remote_separator: str = "/"
    remote_encoding: str = "utf-8"

    def ssh_target(self) -> SSHTarget:
        """SSH target for this launch.

        Raises:
            ConfigError: If no host or user is configured
        """
        if not self.host:
            raise ConfigError("No remote host configured (set remote.host)")
        if not self.user:
            raise ConfigError("No remote user configured (set remote.user)")
        if self.key_path is not None:
            _warn_insecure_key(self.key_path)
        return SSHTarget(host=self.host, user=self.user, key_path=self.key_path, port=self.port)


def _warn_insecure_key(key_path: Path) -> None:
    key = key_path.expanduser()
    if not key.exists():
        return
    mode = key.stat().st_mode
    if mode & 0o077:  # Group or other have access
        logger.warning(
            f"SSH key has insecure permissions: {oct(mode & 0o777)}\n"
            f"Expected: 0600 (-rw-------)\n"
            f"File: {key}"
        )


@dataclass
class RdlaunchConfig:
    """Stored configuration data."""

    prerun_commands: str = ""
    remote_workspace: str = ""
    gdb_path: str = "gdb"
    host: str | None = None
    user: str | None = None
    key_path: str | None = None
    port: int = 22
    separator: str = "/"
    encoding: str = "utf-8"

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Convert to nested TOML tables, excluding None values."""
        data: dict[str, dict[str, Any]] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data.setdefault(SECTIONS[f.name], {})[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RdlaunchConfig":
        """Create from nested TOML tables."""
        launch = data.get("launch", {})
        remote = data.get("remote", {})
        return cls(
            prerun_commands=launch.get("prerun_commands", ""),
            remote_workspace=launch.get("remote_workspace", ""),
            gdb_path=launch.get("gdb_path", "gdb"),
            host=remote.get("host"),
            user=remote.get("user"),
            key_path=remote.get("key_path"),
            port=int(remote.get("port", 22)),
            separator=remote.get("separator", "/"),
            encoding=remote.get("encoding", "utf-8"),
        )

    def to_launch_configuration(self, project_root: Path) -> LaunchConfiguration:
        return LaunchConfiguration(
            project_root=project_root.expanduser().resolve(),
            prerun_commands=self.prerun_commands,
            remote_workspace=self.remote_workspace,
            gdb_path=self.gdb_path,
            host=self.host or "",
            user=self.user or "",
            key_path=Path(self.key_path) if self.key_path else None,
            port=self.port,
            remote_separator=self.separator,
            remote_encoding=self.encoding,
        )


class ConfigManager:
    """Manage rdlaunch configuration files."""

    DEFAULT_CONFIG_DIR = Path.home() / ".rdlaunch"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None, project_root: Path | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If custom_path does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        if project_root is not None:
            project_config = project_root / PROJECT_CONFIG_NAME
            if project_config.exists():
                return project_config

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None, project_root: Path | None = None) -> RdlaunchConfig:
        """Load configuration from file.

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path, project_root)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return RdlaunchConfig()

        try:
            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]
            logger.debug(f"Loaded config from: {config_path}")
            return RdlaunchConfig.from_dict(data)
        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: RdlaunchConfig, custom_path: str | None = None) -> Path:
        """Save configuration, preserving comments in an existing file.

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = Path(custom_path).expanduser().resolve()
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
                os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            for section, values in config.to_dict().items():
                if section not in doc:
                    doc[section] = tomlkit.table()
                for key, value in values.items():
                    doc[section][key] = value  # type: ignore[index]

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except Exception as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> RdlaunchConfig:
        """Update configuration values.

        Keys may be given bare (gdb_path) or with their section (launch.gdb_path).

        Raises:
            ConfigError: If a key is unknown or saving fails
        """
        if custom_path and not Path(custom_path).expanduser().exists():
            config = RdlaunchConfig()
        else:
            config = cls.load_config(custom_path)

        for key, value in updates.items():
            name = key.split(".", 1)[-1]
            if name not in SECTIONS:
                raise ConfigError(f"Unknown config key: {key}")
            if name == "port":
                try:
                    value = int(value)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"Invalid port: {value}") from e
            setattr(config, name, value)

        cls.save_config(config, custom_path)
        return config


__all__ = [
    "ConfigError",
    "ConfigManager",
    "LaunchConfiguration",
    "RdlaunchConfig",
]
