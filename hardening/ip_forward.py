"""IPv4 forwarding sysctl.

Hardened means the live kernel value (via sysctl and /proc) is the desired
one and a drop-in under /etc/sysctl.d keeps it across reboots.
"""

import re
import subprocess
from pathlib import Path
from typing import Optional

from .config import IpForwardConfig
from .errors import ActionFailure, ObservationFailure, ValidationFailure, require_tool
from .files import ensure_dir, ensure_file, is_readable, read_file, remove_file, render_template
from .paths import proc_path
from .reconciler import Action, Collaborator, Comparator, Fact, Plan, Target

LIVE = "sysctl-live"
PROC = "proc-value"
PERSISTENT = "persistent-config"

WRITE_DROPIN = "write sysctl drop-in"
REMOVE_DROPIN = "remove sysctl drop-in"
RELOAD = "reload sysctl"

# sysctl.conf(5): "token = value", optionally prefixed with "-"
SYSCTL_LINE = re.compile(r"^-?[\w.*/-]+\s*=\s*\S.*$")


def build_plan(config: IpForwardConfig) -> Plan:
    """Build the hardened and restore targets with their actions."""
    harden = Target(f"{config.key}={config.desired}", (
        Fact(LIVE, config.desired, description="live kernel value"),
        Fact(PROC, config.desired, description=f"{proc_path(config.key)}"),
        Fact(PERSISTENT, True, Comparator.BOOLEAN, description=str(config.conf_file)),
    ))
    forward = (
        Action(
            WRITE_DROPIN, facts=(PERSISTENT,),
            prompt=f"Create or fix {config.conf_file} now?", default=False,
        ),
        Action(
            RELOAD, facts=(LIVE, PROC), activates=True,
            prompt="Apply immediately with sysctl --system?", default=False,
        ),
    )

    restore = Target(f"{config.key} drop-in removed", (
        Fact(PERSISTENT, False, Comparator.BOOLEAN, description=str(config.conf_file)),
    ))
    backout = (
        Action(REMOVE_DROPIN, facts=(PERSISTENT,)),
        Action(RELOAD, activates=True),
    )
    return Plan(harden, forward, restore, backout)


def has_assignment(content: str, key: str, value: str) -> bool:
    """Check for an active `key = value` line in sysctl.conf syntax."""
    pattern = rf"^\s*{re.escape(key)}\s*=\s*{re.escape(value)}\s*$"
    return re.search(pattern, content, flags=re.MULTILINE) is not None


class IpForwardCollaborator(Collaborator):
    """Reads the sysctl value and manages its persistent drop-in."""

    def __init__(self, config: IpForwardConfig, proc_file: Optional[Path] = None):
        self.config = config
        self.proc_file = proc_file or proc_path(config.key)

    def read(self, fact_name: str):
        if fact_name == LIVE:
            return self.live_value()
        if fact_name == PROC:
            if not is_readable(self.proc_file):
                raise ObservationFailure(f"{self.proc_file} not readable")
            return self.proc_file.read_text().strip()
        if fact_name == PERSISTENT:
            return has_assignment(read_file(self.config.conf_file), self.config.key, self.config.desired)
        raise ObservationFailure(f"unknown fact {fact_name}")

    def live_value(self) -> str:
        try:
            result = subprocess.run(
                ["sysctl", "-n", self.config.key],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            raise ObservationFailure("sysctl not found")
        if result.returncode != 0:
            raise ObservationFailure(f"sysctl -n {self.config.key} failed: {result.stderr.strip()}")
        return result.stdout.strip()

    def write(self, action: Action) -> None:
        if action.name == WRITE_DROPIN:
            conf_file = self.config.conf_file
            content = render_template("sysctl-dropin.conf.j2", {
                "key": self.config.key,
                "desired": self.config.desired,
            })
            ensure_dir(conf_file.parent, mode=0o755)
            ensure_file(conf_file, content, mode=0o644)
        elif action.name == REMOVE_DROPIN:
            remove_file(self.config.conf_file)
        elif action.name == RELOAD:
            self.reload()
        else:
            raise ActionFailure(f"unknown action {action.name}")

    def reload(self) -> None:
        sysctl = require_tool("sysctl", "reload kernel parameters")
        print("Reloading sysctl from config files...")
        result = subprocess.run([sysctl, "--system"], capture_output=True, text=True)
        if result.returncode != 0:
            raise ActionFailure(f"sysctl --system failed: {result.stderr.strip()}")
        for line in result.stdout.splitlines():
            if self.config.key in line:
                print(f"  {line}")

    def validate(self) -> None:
        conf_file = self.config.conf_file
        for number, line in enumerate(read_file(conf_file).splitlines(), start=1):
            line = line.strip()
            if not line or line.startswith(("#", ";")):
                continue
            if not SYSCTL_LINE.match(line):
                raise ValidationFailure(f"{conf_file}:{number}: not a key=value line: {line}")
