"""rpcbind exposure, for hosts that do not need NFS.

Hardened means every rpcbind unit is inactive and masked (a unit that is not
installed counts as both) and nothing listens on port 111. Purging the
package is destructive and only runs unattended when --purge was given.
"""

import subprocess

from .config import RpcbindConfig
from .errors import ActionFailure, ObservationFailure
from .packages import install_package, is_installed, purge_package
from .reconciler import Action, Collaborator, Comparator, Fact, Plan, Target
from .services import disable_service, enable_service, is_active, is_enabled, is_masked, mask_unit, unmask_unit

INSTALLED = "rpcbind-installed"
PORT_LISTENING = "port-listening"


def active_fact(unit: str) -> str:
    return f"{unit}.active"


def masked_fact(unit: str) -> str:
    return f"{unit}.masked"


def enabled_fact(unit: str) -> str:
    return f"{unit}.enabled"


def build_plan(config: RpcbindConfig, purge: bool = False) -> Plan:
    """
    Build the hardened and restore targets with their actions.

    Args:
        config: Package, unit and port settings
        purge: Pre-authorize purging the package and require it gone
    """
    facts = []
    forward = []
    # Answered once for every disable/mask action that is still needed.
    disable_prompt = f"Disable and mask {' and '.join(config.units)} now?"
    for unit in config.units:
        facts.append(Fact(active_fact(unit), False, Comparator.BOOLEAN))
        facts.append(Fact(masked_fact(unit), True, Comparator.BOOLEAN))
        forward.append(Action(f"disable {unit}", facts=(active_fact(unit),), prompt=disable_prompt))
        forward.append(Action(f"mask {unit}", facts=(masked_fact(unit),), prompt=disable_prompt))
    facts.append(Fact(
        PORT_LISTENING, False, Comparator.BOOLEAN, optional=True,
        description=f"listener on port {config.port}",
    ))
    # Without --purge the package may stay, but it is still observed so the
    # purge step is skipped on hosts where it is already gone.
    facts.append(Fact(
        INSTALLED, False, Comparator.BOOLEAN, informational=not purge,
        description="package" if purge else "package, purged only with --purge",
    ))
    forward.append(Action(
        f"purge {config.package}",
        facts=(INSTALLED,),
        destructive=True,
        reversible=True,
        authorized=purge,
        prompt=f"Purge the {config.package} package via apt-get now?",
    ))

    # The first unit is the socket that activates the service on demand.
    socket_unit = config.units[0]
    restore_facts = [Fact(INSTALLED, True, Comparator.BOOLEAN)]
    restore_facts += [Fact(masked_fact(unit), False, Comparator.BOOLEAN) for unit in config.units]
    restore_facts += [
        Fact(enabled_fact(socket_unit), True, Comparator.BOOLEAN),
        Fact(active_fact(socket_unit), True, Comparator.BOOLEAN),
    ]
    backout = [Action(f"install {config.package}", facts=(INSTALLED,))]
    backout += [Action(f"unmask {unit}", facts=(masked_fact(unit),)) for unit in config.units]
    backout.append(Action(
        f"enable {socket_unit}",
        facts=(enabled_fact(socket_unit), active_fact(socket_unit)),
    ))
    backout += [Action(f"enable {unit}") for unit in config.units[1:]]

    return Plan(
        Target(f"{config.package} exposure", tuple(facts)),
        tuple(forward),
        Target(f"{config.package} restored", tuple(restore_facts)),
        tuple(backout),
    )


def listening_sockets(port: int) -> list[str]:
    """
    Return the `ss -tulpn` lines for sockets bound to a port.

    Raises:
        ObservationFailure: ss(8) is not available or failed
    """
    try:
        result = subprocess.run(["ss", "-tulpn"], capture_output=True, text=True)
    except FileNotFoundError:
        raise ObservationFailure(f"ss(8) not available - skipping port {port} check")
    if result.returncode != 0:
        raise ObservationFailure(f"ss -tulpn failed: {result.stderr.strip()}")
    lines = []
    for line in result.stdout.splitlines():
        fields = line.split()
        # Netid State Recv-Q Send-Q Local-Address:Port Peer-Address:Port ...
        if len(fields) > 4 and fields[4].rsplit(":", 1)[-1] == str(port):
            lines.append(line)
    return lines


class RpcbindCollaborator(Collaborator):
    """Reads and changes rpcbind's package and systemd unit state."""

    def __init__(self, config: RpcbindConfig):
        self.config = config

    def read(self, fact_name: str):
        if fact_name == INSTALLED:
            return is_installed(self.config.package)
        if fact_name == PORT_LISTENING:
            lines = listening_sockets(self.config.port)
            for line in lines:
                print(f"  listening: {line}")
            return bool(lines)

        unit, _, state = fact_name.rpartition(".")
        if unit not in self.config.units:
            raise ObservationFailure(f"unknown fact {fact_name}")
        if state == "active":
            return is_active(unit)
        if state == "masked":
            return is_masked(unit)
        if state == "enabled":
            return is_enabled(unit)
        raise ObservationFailure(f"unknown fact {fact_name}")

    def write(self, action: Action) -> None:
        verb, _, subject = action.name.partition(" ")
        if subject == self.config.package:
            if verb == "purge":
                purge_package(subject)
                return
            if verb == "install":
                install_package(subject)
                return
        elif subject in self.config.units:
            if verb == "disable":
                disable_service(subject, stop=True)
                return
            if verb == "mask":
                mask_unit(subject)
                return
            if verb == "unmask":
                unmask_unit(subject)
                return
            if verb == "enable":
                # Only the socket is started; the service starts on demand.
                enable_service(subject, start=subject == self.config.units[0])
                return
        raise ActionFailure(f"unknown action {action.name}")
