#!/usr/bin/env python3
"""
ubuntu-harden - check, apply and back out well-known Ubuntu hardening.

Each subsystem is reconciled the same way: read the live state, compare it
to the hardened profile, apply only what is missing, then read it again.

Usage:
    ./ubuntu_harden.py ssh                  # Interactive SSH crypto hardening
    ./ubuntu_harden.py ssh --check          # Report only, exit 1 if not hardened
    ./ubuntu_harden.py rpcbind -n --purge   # Disable, mask and purge rpcbind
    ./ubuntu_harden.py rpcbind --backout    # Reinstall and re-enable rpcbind
    ./ubuntu_harden.py ip-forward -n        # Enforce net.ipv4.ip_forward=0
    ./ubuntu_harden.py all --check          # Check every subsystem
    ./ubuntu_harden.py info                 # Show configuration and tools
"""

import argparse
import os
import shutil
import sys
from pathlib import Path

# Add the project root to the path when run as a script
sys.path.insert(0, str(Path(__file__).parent))

from hardening import ip_forward, rpcbind, ssh
from hardening.config import HardeningConfig, load_config, resolve_config_path
from hardening.prompts import warn_missing
from hardening.reconciler import Collaborator, Plan, Reconciler, RunMode, RunResult

# Tool -> what is lost without it
REQUIRED_TOOLS = {
    "systemctl": "rpcbind units cannot be managed and sshd cannot be reloaded",
    "sshd": "the SSH crypto policy cannot be read or validated",
    "sysctl": "the live ip_forward value cannot be read or reloaded",
    "dpkg-query": "rpcbind is always reported as not installed",
    "apt-get": "rpcbind cannot be purged or reinstalled",
    "ss": "the port 111 listener check is skipped",
}


def require_root() -> None:
    """Exit unless running as root."""
    if os.geteuid() != 0:
        raise PermissionError("This command must be run as root (use sudo).")


def mode_from_args(args: argparse.Namespace) -> RunMode:
    """Map the mode flags to a RunMode."""
    if args.check:
        return RunMode.CHECK_ONLY
    if args.backout:
        return RunMode.BACKOUT
    if args.non_interactive:
        return RunMode.APPLY_UNATTENDED
    return RunMode.APPLY


class UbuntuHarden:
    """Main hardening class: one method per subsystem."""

    def __init__(self, config: HardeningConfig, verbose: bool = False):
        self.config = config
        self.verbose = verbose
        self.results: list[RunResult] = []

    def _run(self, plan: Plan, collaborator: Collaborator, mode: RunMode) -> RunResult:
        target, actions = plan.for_mode(mode)
        result = Reconciler(verbose=self.verbose).run(target, actions, collaborator, mode)
        self.results.append(result)
        return result

    # -------------------------------------------------------------------------
    # Subsystems
    # -------------------------------------------------------------------------

    def harden_ssh(self, mode: RunMode) -> RunResult:
        """Enforce the strong SSH crypto profile."""
        return self._run(
            ssh.build_plan(self.config.ssh),
            ssh.SshCollaborator(self.config.ssh),
            mode,
        )

    def harden_rpcbind(self, mode: RunMode, purge: bool = False) -> RunResult:
        """Minimize rpcbind exposure."""
        return self._run(
            rpcbind.build_plan(self.config.rpcbind, purge=purge),
            rpcbind.RpcbindCollaborator(self.config.rpcbind),
            mode,
        )

    def harden_ip_forward(self, mode: RunMode) -> RunResult:
        """Enforce IPv4 forwarding off, live and persistently."""
        return self._run(
            ip_forward.build_plan(self.config.ip_forward),
            ip_forward.IpForwardCollaborator(self.config.ip_forward),
            mode,
        )

    def harden_all(self, mode: RunMode, purge: bool = False) -> list[RunResult]:
        """Run every subsystem in turn."""
        self.harden_ssh(mode)
        print()
        self.harden_rpcbind(mode, purge=purge)
        print()
        self.harden_ip_forward(mode)

        print()
        print("=" * 60)
        for result in self.results:
            status = "OK" if result.ok else "FAILED"
            print(f"  {result.target}: {status}")
        print("=" * 60)
        return self.results

    @property
    def exit_code(self) -> int:
        return 0 if self.results and all(r.ok for r in self.results) else 1


def show_info(config_path: str | None) -> None:
    """Print configuration and tool availability."""
    path = resolve_config_path(config_path)
    print(f"Config File: {path or 'built-in defaults'}")
    print(f"Python: {sys.version.split()[0]}")
    print("Tools:")
    for tool, consequence in REQUIRED_TOOLS.items():
        location = shutil.which(tool)
        if location:
            print(f"  {tool}: {location}")
        else:
            warn_missing(tool, consequence)


def build_parser() -> argparse.ArgumentParser:
    # Common flags shared by all subcommands
    common_parser = argparse.ArgumentParser(add_help=False)
    modes = common_parser.add_mutually_exclusive_group()
    modes.add_argument(
        "-c", "--check", "--check-only",
        dest="check",
        action="store_true",
        help="Report status only, make no changes",
    )
    modes.add_argument(
        "-n", "--non-interactive",
        action="store_true",
        help="Apply hardening without prompts",
    )
    modes.add_argument(
        "-b", "--backout", "--restore",
        dest="backout",
        action="store_true",
        help="Restore the pre-hardening state",
    )
    common_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show observed and desired values",
    )
    common_parser.add_argument(
        "--config",
        type=str,
        help="Path to a TOML config file",
    )

    parser = argparse.ArgumentParser(
        description="ubuntu-harden - idempotent hardening for Ubuntu hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("ssh", help="SSH daemon crypto policy", parents=[common_parser])

    rpc_parser = subparsers.add_parser(
        "rpcbind", help="rpcbind service exposure", parents=[common_parser]
    )
    rpc_parser.add_argument(
        "--purge",
        action="store_true",
        help="Also purge the rpcbind package (pre-authorizes it in -n mode)",
    )

    subparsers.add_parser("ip-forward", help="IPv4 forwarding sysctl", parents=[common_parser])

    all_parser = subparsers.add_parser("all", help="Every subsystem", parents=[common_parser])
    all_parser.add_argument(
        "--purge",
        action="store_true",
        help="Also purge the rpcbind package",
    )

    info_parser = subparsers.add_parser("info", help="Show configuration and tools")
    info_parser.add_argument("--config", type=str, help="Path to a TOML config file")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    verbose = getattr(args, "verbose", False)

    try:
        if args.command == "info":
            show_info(args.config)
            return 0

        require_root()
        config = load_config(args.config)
        mode = mode_from_args(args)
        harden = UbuntuHarden(config, verbose=verbose)

        if args.command == "ssh":
            harden.harden_ssh(mode)
        elif args.command == "rpcbind":
            harden.harden_rpcbind(mode, purge=args.purge)
        elif args.command == "ip-forward":
            harden.harden_ip_forward(mode)
        elif args.command == "all":
            harden.harden_all(mode, purge=args.purge)

        return harden.exit_code

    except KeyboardInterrupt:
        print("\nAborted.")
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
