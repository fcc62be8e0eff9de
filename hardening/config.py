"""Configuration for the hardening profiles.

Defaults reproduce the Ubuntu 24.04 / OpenSSH 9.6 profile. An optional TOML
file can override them per subsystem:

    [ssh]
    kex_algorithms = ["curve25519-sha256", "..."]

    [rpcbind]
    units = ["rpcbind.socket", "rpcbind.service"]

    [ip_forward]
    conf_file = "/etc/sysctl.d/99-ipforward.conf"
"""

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Union

from .paths import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_FILE,
    IP_FORWARD_DROPIN,
    SSH_BACKUP_DIR,
    SSHD_CONFIG,
    SSHD_CRYPTO_DROPIN,
)

# Allow lists as reported by `sshd -T`. Matched as full lines, so order matters.
DEFAULT_KEX_ALGORITHMS = (
    "sntrup761x25519-sha512@openssh.com",
    "curve25519-sha256",
    "curve25519-sha256@libssh.org",
    "ecdh-sha2-nistp256",
    "ecdh-sha2-nistp384",
    "ecdh-sha2-nistp521",
    "diffie-hellman-group14-sha256",
    "diffie-hellman-group16-sha512",
    "diffie-hellman-group18-sha512",
)
DEFAULT_MACS = (
    "hmac-sha2-256-etm@openssh.com",
    "hmac-sha2-512-etm@openssh.com",
    "umac-64-etm@openssh.com",
    "umac-128-etm@openssh.com",
)
DEFAULT_HOST_KEY_ALGORITHMS = (
    "ssh-ed25519",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
    "rsa-sha2-256",
    "rsa-sha2-512",
)


@dataclass(frozen=True)
class SshConfig:
    kex_algorithms: tuple[str, ...] = DEFAULT_KEX_ALGORITHMS
    macs: tuple[str, ...] = DEFAULT_MACS
    host_key_algorithms: tuple[str, ...] = DEFAULT_HOST_KEY_ALGORITHMS
    main_config: Path = SSHD_CONFIG
    dropin: Path = SSHD_CRYPTO_DROPIN
    backup_dir: Path = SSH_BACKUP_DIR


@dataclass(frozen=True)
class RpcbindConfig:
    package: str = "rpcbind"
    units: tuple[str, ...] = ("rpcbind.socket", "rpcbind.service")
    port: int = 111


@dataclass(frozen=True)
class IpForwardConfig:
    key: str = "net.ipv4.ip_forward"
    desired: str = "0"
    conf_file: Path = IP_FORWARD_DROPIN


@dataclass(frozen=True)
class HardeningConfig:
    ssh: SshConfig = field(default_factory=SshConfig)
    rpcbind: RpcbindConfig = field(default_factory=RpcbindConfig)
    ip_forward: IpForwardConfig = field(default_factory=IpForwardConfig)


def _coerce(section: str, name: str, default, value):
    """Check a TOML value against the type of the field's default."""
    if isinstance(default, Path):
        if not isinstance(value, str) or not value:
            raise ValueError(f"[{section}] {name} must be a non-empty path string")
        return Path(value)
    if isinstance(default, tuple):
        if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
            raise ValueError(f"[{section}] {name} must be a list of strings")
        if not value:
            raise ValueError(f"[{section}] {name} must not be empty")
        return tuple(value)
    # bool is an int subclass, but `port = true` is still a mistake
    if isinstance(default, int) and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValueError(f"[{section}] {name} must be an integer")
    if isinstance(default, str) and (not isinstance(value, str) or not value):
        raise ValueError(f"[{section}] {name} must be a non-empty string")
    return value


def _build_section(cls, section: str, data: dict):
    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown key(s) in [{section}]: {', '.join(sorted(unknown))}")
    values = {
        name: _coerce(section, name, getattr(defaults, name), value)
        for name, value in data.items()
    }
    return cls(**values)


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """
    Pick the config file: explicit path, then env var, then the default.

    Returns None when only the default location applies and it is absent.
    """
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    if DEFAULT_CONFIG_FILE.exists():
        return DEFAULT_CONFIG_FILE
    return None


def load_config(path: Optional[Union[str, Path]] = None) -> HardeningConfig:
    """
    Load hardening settings from a TOML file, falling back to defaults.

    An explicitly named file that does not exist is an error.
    """
    config_path = resolve_config_path(path)
    if config_path is None:
        return HardeningConfig()
    if not config_path.exists():
        raise ValueError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    sections = {"ssh": SshConfig, "rpcbind": RpcbindConfig, "ip_forward": IpForwardConfig}
    unknown = set(data) - set(sections)
    if unknown:
        raise ValueError(f"Unknown section(s) in {config_path}: {', '.join(sorted(unknown))}")

    return HardeningConfig(**{
        name: _build_section(cls, name, data.get(name, {}))
        for name, cls in sections.items()
    })
