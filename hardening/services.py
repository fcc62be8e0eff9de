"""Systemd unit management with idempotent operations."""

import subprocess

from .errors import PrerequisiteMissing


def _systemctl(*args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run a systemctl command."""
    cmd = ["systemctl"] + list(args)
    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=check)
    except FileNotFoundError:
        raise PrerequisiteMissing("systemctl", f"run systemctl {args[0]}")


def unit_exists(unit: str) -> bool:
    """Check if a service or socket unit file is installed."""
    result = _systemctl(
        "list-unit-files", "--type=service", "--type=socket", "--no-legend",
        check=False,
    )
    for line in result.stdout.splitlines():
        fields = line.split()
        if fields and fields[0] == unit:
            return True
    return False


def enabled_state(unit: str) -> str:
    """Return the `systemctl is-enabled` state, or 'unknown'."""
    result = _systemctl("is-enabled", unit, check=False)
    output = (result.stdout + result.stderr).strip()
    return output.splitlines()[-1] if output else "unknown"


def is_active(unit: str) -> bool:
    """Check if a unit is currently running. Absent units are inactive."""
    if not unit_exists(unit):
        return False
    result = _systemctl("is-active", "--quiet", unit, check=False)
    return result.returncode == 0


def is_enabled(unit: str) -> bool:
    """Check if a unit is enabled."""
    return enabled_state(unit) in ("enabled", "enabled-runtime")


def is_masked(unit: str) -> bool:
    """Check if a unit is masked. Absent units count as masked."""
    if not unit_exists(unit):
        return True
    return "masked" in enabled_state(unit)


def disable_service(unit: str, stop: bool = True) -> bool:
    """
    Idempotently disable a unit.

    Returns:
        True if any action was taken, False if already in desired state
    """
    if not unit_exists(unit):
        print(f"Unit {unit} not present")
        return False

    changed = False

    if stop and is_active(unit):
        print(f"Stopping and disabling {unit}")
        _systemctl("disable", "--now", unit)
        return True

    if is_enabled(unit):
        print(f"Disabling {unit}")
        _systemctl("disable", unit)
        changed = True

    if not changed:
        print(f"Unit {unit} already disabled and stopped")

    return changed


def mask_unit(unit: str) -> bool:
    """
    Idempotently mask a unit.

    Returns:
        True if the unit was masked by this call
    """
    if is_masked(unit):
        print(f"Unit {unit} already masked or not present")
        return False
    print(f"Masking {unit}")
    _systemctl("mask", unit)
    return True


def unmask_unit(unit: str) -> bool:
    """
    Idempotently unmask a unit.

    Returns:
        True if the unit was unmasked by this call
    """
    if not unit_exists(unit) or "masked" not in enabled_state(unit):
        print(f"Unit {unit} not masked")
        return False
    print(f"Unmasking {unit}")
    _systemctl("unmask", unit)
    return True


def enable_service(unit: str, start: bool = True) -> bool:
    """
    Idempotently enable a unit.

    Args:
        unit: Unit name (e.g., "rpcbind.socket")
        start: Also start the unit if not running

    Returns:
        True if any action was taken, False if already in desired state
    """
    changed = False

    if not is_enabled(unit):
        print(f"Enabling {unit}")
        _systemctl("enable", unit)
        changed = True

    if start and not is_active(unit):
        print(f"Starting {unit}")
        _systemctl("start", unit)
        changed = True

    if not changed:
        print(f"Unit {unit} already enabled" + (" and running" if start else ""))

    return changed


def reload_service(unit: str) -> None:
    """Reload a service configuration without full restart."""
    print(f"Reloading {unit}")
    _systemctl("reload", unit)


def find_ssh_service() -> str | None:
    """
    Get the SSH service name for this host.

    Ubuntu ships 'ssh.service'; other distros use 'sshd.service'.
    """
    for name in ("sshd", "ssh"):
        if unit_exists(f"{name}.service"):
            return name
    return None
