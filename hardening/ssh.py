"""OpenSSH server crypto policy.

Hardened means the effective server configuration reported by `sshd -T`
disables GSSAPI and limits KEX, MAC and host key algorithms to the allow
lists in SshConfig. The lines are compared whole and exactly: an allow list
with one extra algorithm is not hardened. The `gssapikexalgorithms` line can
still list legacy groups while GSSAPI key exchange is off; it is not
checked.
"""

import re
import subprocess
from datetime import datetime
from typing import Optional

from .config import SshConfig
from .errors import ActionFailure, ObservationFailure, PrerequisiteMissing, ValidationFailure
from .files import backup_file, ensure_dir, ensure_file, read_file, remove_file, render_template
from .reconciler import Action, Collaborator, Comparator, Fact, Plan, Target
from .services import find_ssh_service, reload_service

# Fact names. The crypto facts are the lowercase keywords printed by sshd -T.
GSSAPI_KEX = "gssapikeyexchange"
GSSAPI_AUTH = "gssapiauthentication"
KEX = "kexalgorithms"
MACS = "macs"
HOST_KEYS = "hostkeyalgorithms"
NO_SHA1_MACS = "no-sha1-macs"
DROPIN_PRESENT = "dropin-present"

LINE_FACTS = (GSSAPI_KEX, GSSAPI_AUTH, KEX, MACS, HOST_KEYS)
CRYPTO_FACTS = LINE_FACTS + (NO_SHA1_MACS,)

# Action names
BACKUP = "backup configs"
ENSURE_INCLUDE = "ensure drop-in include"
COMMENT_DEPRECATED = "comment deprecated options"
WRITE_DROPIN = "write crypto drop-in"
REMOVE_DROPIN = "remove crypto drop-in"
RELOAD = "reload sshd"

DEPRECATED_OPTIONS = ("UsePrivilegeSeparation",)


def build_plan(config: SshConfig) -> Plan:
    """Build the hardened and restore targets with their actions."""
    harden = Target("sshd crypto policy", (
        Fact(GSSAPI_KEX, f"{GSSAPI_KEX} no"),
        Fact(GSSAPI_AUTH, f"{GSSAPI_AUTH} no"),
        Fact(KEX, f"{KEX} " + ",".join(config.kex_algorithms)),
        Fact(MACS, f"{MACS} " + ",".join(config.macs)),
        Fact(HOST_KEYS, f"{HOST_KEYS} " + ",".join(config.host_key_algorithms)),
        Fact(
            NO_SHA1_MACS, "hmac-sha1", Comparator.NOT_CONTAINS,
            description="no SHA1 MACs anywhere in the effective config",
        ),
    ))
    forward = (
        Action(BACKUP, prompt="Create backup of existing configs before changes?", default=True),
        Action(ENSURE_INCLUDE),
        Action(COMMENT_DEPRECATED),
        Action(WRITE_DROPIN, facts=CRYPTO_FACTS),
        Action(
            RELOAD, facts=CRYPTO_FACTS, activates=True,
            prompt="Reload sshd now to apply changes?", default=True,
        ),
    )

    restore = Target("sshd crypto drop-in removed", (
        Fact(DROPIN_PRESENT, False, Comparator.BOOLEAN),
    ))
    backout = (
        Action(BACKUP),
        Action(REMOVE_DROPIN, facts=(DROPIN_PRESENT,)),
        Action(RELOAD, activates=True),
    )
    return Plan(harden, forward, restore, backout)


def insert_include(content: str, include_line: str) -> str:
    """
    Insert an Include line after the leading comment block.

    If the file holds nothing but comments, the line is appended.
    """
    lines = content.splitlines()
    for index, line in enumerate(lines):
        if not line.startswith("#"):
            lines.insert(index, include_line)
            break
    else:
        lines.append(include_line)
    return "\n".join(lines) + "\n"


def comment_options(content: str, options=DEPRECATED_OPTIONS) -> str:
    """Comment out every active line that sets one of the given options."""
    for option in options:
        content = re.sub(rf"^([ \t]*{re.escape(option)}\b)", r"#\1", content, flags=re.MULTILINE)
    return content


class SshCollaborator(Collaborator):
    """Reads sshd's effective config and manages the crypto drop-in."""

    def __init__(self, config: SshConfig):
        self.config = config
        self._effective: Optional[str] = None

    @property
    def include_line(self) -> str:
        return f"Include {self.config.dropin.parent}/*.conf"

    def begin_observation(self) -> None:
        self._effective = None

    def effective_config(self) -> str:
        """Return the output of `sshd -T`, read once per observation pass."""
        if self._effective is not None:
            return self._effective
        try:
            result = subprocess.run(["sshd", "-T"], capture_output=True, text=True)
        except FileNotFoundError:
            raise ObservationFailure("sshd not found - cannot read effective config")
        if result.returncode != 0:
            raise ObservationFailure(f"sshd -T failed: {result.stderr.strip()}")
        self._effective = result.stdout
        return self._effective

    def read(self, fact_name: str):
        if fact_name == DROPIN_PRESENT:
            return self.config.dropin.exists()

        output = self.effective_config()
        if fact_name == NO_SHA1_MACS:
            return output
        if fact_name not in LINE_FACTS:
            raise ObservationFailure(f"unknown fact {fact_name}")

        for line in output.splitlines():
            if line.split(" ", 1)[0] == fact_name:
                return line
        return ""

    def write(self, action: Action) -> None:
        self._effective = None
        handlers = {
            BACKUP: self.backup,
            ENSURE_INCLUDE: self.ensure_include,
            COMMENT_DEPRECATED: self.comment_deprecated,
            WRITE_DROPIN: self.write_dropin,
            REMOVE_DROPIN: self.remove_dropin,
            RELOAD: self.reload,
        }
        handler = handlers.get(action.name)
        if handler is None:
            raise ActionFailure(f"unknown action {action.name}")
        handler()

    def validate(self) -> None:
        try:
            result = subprocess.run(["sshd", "-t"], capture_output=True, text=True)
        except FileNotFoundError:
            raise PrerequisiteMissing("sshd", "validate sshd configuration")
        if result.returncode != 0:
            raise ValidationFailure(
                f"sshd configuration invalid: {result.stderr.strip()}",
                output=result.stderr,
            )
        print("sshd configuration syntax OK.")

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def backup(self) -> None:
        timestamp = datetime.now().strftime("%y%m%d_%H%M%S")
        for path in (self.config.main_config, self.config.dropin):
            backup_file(path, self.config.backup_dir, timestamp)

    def ensure_include(self) -> None:
        main_config = self.config.main_config
        if not main_config.exists():
            print(f"Warning: {main_config} not found, skipping Include check.")
            return

        content = read_file(main_config)
        pattern = rf"^\s*Include\s+{re.escape(str(self.config.dropin.parent))}/"
        if re.search(pattern, content, flags=re.MULTILINE):
            print(f"Include for {self.config.dropin.parent}/*.conf already present in {main_config}.")
            return

        print(f"Adding {self.include_line} to {main_config}")
        ensure_file(main_config, insert_include(content, self.include_line))

    def comment_deprecated(self) -> None:
        main_config = self.config.main_config
        if not main_config.exists():
            return
        content = read_file(main_config)
        updated = comment_options(content)
        if updated != content:
            ensure_file(main_config, updated)

    def write_dropin(self) -> None:
        dropin = self.config.dropin
        content = render_template("sshd-strong-crypto.conf.j2", {
            "path": dropin,
            "kex_algorithms": self.config.kex_algorithms,
            "macs": self.config.macs,
            "host_key_algorithms": self.config.host_key_algorithms,
        })
        ensure_dir(dropin.parent, mode=0o755)
        ensure_file(dropin, content, mode=0o644)

    def remove_dropin(self) -> None:
        remove_file(self.config.dropin)

    def reload(self) -> None:
        service = find_ssh_service()
        if service is None:
            raise ActionFailure("could not find an sshd/ssh service to reload")
        reload_service(service)
