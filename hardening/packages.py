"""APT package management with idempotent operations."""

import os
import subprocess

from .errors import require_tool


def _apt_env() -> dict[str, str]:
    """Environment for unattended apt-get runs."""
    env = os.environ.copy()
    env["DEBIAN_FRONTEND"] = "noninteractive"
    return env


def is_installed(package: str) -> bool:
    """Check if a package is installed according to dpkg."""
    try:
        result = subprocess.run(
            ["dpkg-query", "-W", "-f=${Status}", package],
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0 and "install ok installed" in result.stdout


def install_package(package: str) -> bool:
    """
    Idempotently install a package via apt-get.

    Returns:
        True if the package was newly installed
    """
    if is_installed(package):
        print(f"Package {package} already installed")
        return False

    apt_get = require_tool("apt-get", f"install {package}")
    print(f"Installing {package} via apt-get...")
    subprocess.run([apt_get, "install", "-y", package], env=_apt_env(), check=True)
    return True


def purge_package(package: str) -> bool:
    """
    Idempotently purge a package via apt-get.

    Returns:
        True if the package was purged by this call
    """
    if not is_installed(package):
        print(f"Package {package} already not installed, skipping purge")
        return False

    apt_get = require_tool("apt-get", f"purge {package}")
    print(f"Purging {package} via apt-get...")
    subprocess.run([apt_get, "purge", "-y", package], env=_apt_env(), check=True)
    return True
