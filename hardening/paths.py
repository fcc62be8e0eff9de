"""Centralized path constants for ubuntu-harden.

Every system path the collaborators touch has its default here; the
config file may override the subsystem-specific ones.
"""

from pathlib import Path

# Package paths
PACKAGE_DIR = Path(__file__).parent.resolve()
TEMPLATES_DIR = PACKAGE_DIR / "templates"

# Our own configuration
DEFAULT_CONFIG_FILE = Path("/etc/ubuntu-harden/config.toml")
CONFIG_ENV_VAR = "UBUNTU_HARDEN_CONFIG"

# System paths - OpenSSH
SSHD_CONFIG = Path("/etc/ssh/sshd_config")
SSHD_DROPIN_DIR = Path("/etc/ssh/sshd_config.d")
SSHD_CRYPTO_DROPIN = SSHD_DROPIN_DIR / "99-strong-crypto.conf"
SSH_BACKUP_DIR = Path("/etc/ssh/backup")

# System paths - sysctl
SYSCTL_DIR = Path("/etc/sysctl.d")
IP_FORWARD_DROPIN = SYSCTL_DIR / "99-ipforward.conf"
PROC_SYS = Path("/proc/sys")


def proc_path(key: str) -> Path:
    """
    Get the /proc/sys path backing a sysctl key.

    Args:
        key: Dotted sysctl key (e.g., 'net.ipv4.ip_forward')

    Returns:
        Path such as /proc/sys/net/ipv4/ip_forward
    """
    return PROC_SYS.joinpath(*key.split("."))
