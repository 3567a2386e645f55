from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lbfleet.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "lbfleet.yaml"


@dataclass
class Settings:
    """Runtime settings. Local directories are absolute after loading."""

    remote_user: str = "ops"
    ssh_port: int = 22
    ssh_key: Path | None = None
    connect_timeout: float = 10
    command_timeout: float = 120
    frontend_service: str = "nginx"
    failover_service: str = "keepalived"
    repository: Path = field(default_factory=lambda: Path("."))
    frontend_dir: Path = field(default_factory=lambda: Path("nginx"))
    frontend_remote_dir: str = "/etc/nginx/"
    tls_dir: Path = field(default_factory=lambda: Path("tls"))
    tls_remote_dir: str = "/etc/ssl/lb/"
    bootstrap_dir: Path = field(default_factory=lambda: Path("bootstrap"))
    bootstrap_remote_dir: str = "/"
    failover_config_path: str = "/etc/keepalived/keepalived.conf"
    render_command: list[str] = field(default_factory=lambda: ["./render-keepalived"])


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML.

    With no explicit path the default file is optional and plain defaults are
    used when it is absent. An explicit path that does not exist is an error.
    """
    explicit = path is not None
    config_path = Path(path if explicit else DEFAULT_CONFIG_PATH).expanduser()

    if not config_path.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {config_path}")
        return _parse_settings({}, Path.cwd())

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path}: expected a mapping at top level")
    return _parse_settings(data, config_path.resolve().parent)


def _parse_settings(data: dict[str, Any], base_dir: Path) -> Settings:
    defaults = Settings()
    services = data.get("services") or {}
    if not isinstance(services, dict):
        raise ConfigurationError("'services' must be a mapping of frontend/failover to unit names")

    def local(key: str, default: Path) -> Path:
        p = Path(data.get(key, default)).expanduser()
        return p if p.is_absolute() else (base_dir / p).resolve()

    ssh_key = data.get("ssh_key")
    render_command = data.get("render_command", defaults.render_command)
    if isinstance(render_command, str):
        render_command = shlex.split(render_command)
    if not isinstance(render_command, list) or not render_command:
        raise ConfigurationError("render_command must be a non-empty command line or list")
    render_command = [str(part) for part in render_command]
    # ./script style executables resolve against the settings directory
    if render_command[0].startswith("."):
        executable = (base_dir / render_command[0]).resolve()
        render_command = [str(executable), *render_command[1:]]

    try:
        return Settings(
            remote_user=str(data.get("remote_user", defaults.remote_user)),
            ssh_port=int(data.get("ssh_port", defaults.ssh_port)),
            ssh_key=Path(ssh_key).expanduser() if ssh_key else None,
            connect_timeout=float(data.get("connect_timeout", defaults.connect_timeout)),
            command_timeout=float(data.get("command_timeout", defaults.command_timeout)),
            frontend_service=services.get("frontend", defaults.frontend_service),
            failover_service=services.get("failover", defaults.failover_service),
            repository=local("repository", defaults.repository),
            frontend_dir=local("frontend_dir", defaults.frontend_dir),
            frontend_remote_dir=data.get("frontend_remote_dir", defaults.frontend_remote_dir),
            tls_dir=local("tls_dir", defaults.tls_dir),
            tls_remote_dir=data.get("tls_remote_dir", defaults.tls_remote_dir),
            bootstrap_dir=local("bootstrap_dir", defaults.bootstrap_dir),
            bootstrap_remote_dir=data.get("bootstrap_remote_dir", defaults.bootstrap_remote_dir),
            failover_config_path=data.get("failover_config_path", defaults.failover_config_path),
            render_command=render_command,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid setting: {exc}") from exc
