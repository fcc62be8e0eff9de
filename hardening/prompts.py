"""Yes/no questions asked during interactive hardening runs."""

import sys


def confirm(message: str, default: bool = False) -> bool:
    """
    Ask a yes/no question on the terminal.

    Without a terminal on stdin (cron, a pipe) nothing can answer, so the
    default is taken and said so.

    Args:
        message: The question to ask
        default: Answer used on Enter, EOF or when stdin is not a terminal

    Returns:
        True if the answer was yes
    """
    suffix = "[Y/n]" if default else "[y/N]"

    if not sys.stdin.isatty():
        print(f"{message} {suffix}: {'y' if default else 'n'} (no terminal)")
        return default

    while True:
        try:
            response = input(f"{message} {suffix}: ").strip().lower()
        except EOFError:
            print()
            return default

        if not response:
            return default
        if response in ("y", "yes"):
            return True
        if response in ("n", "no"):
            return False
        print("  Please answer 'y' or 'n'")


def warn_missing(tool: str, consequence: str) -> None:
    """
    Print a warning about a missing system tool.

    Args:
        tool: The missing executable (e.g., "ss")
        consequence: What can't be done without it
    """
    print(f"  WARNING: {tool} not found")
    print(f"           {consequence}")
