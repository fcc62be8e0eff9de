"""Console reporting shared by every hardening run."""

from typing import List, Optional


class BaseOrchestrator:
    """
    Console output and bookkeeping for one hardening run.

    All output goes to stdout. In check-only mode every line carries a
    prefix so a transcript can't be mistaken for one that changed the host.
    """

    RULE = "=" * 60

    def __init__(self, check_only: bool = False, verbose: bool = False):
        """
        Args:
            check_only: Report state only; prefixes every line
            verbose: Also print observed/desired values and skip reasons
        """
        self.check_only = check_only
        self.verbose = verbose
        self.changes: List[str] = []
        self.skipped: List[str] = []

    def reset(self, check_only: bool) -> None:
        """Start a fresh run, forgetting changes from a previous one."""
        self.check_only = check_only
        self.changes = []
        self.skipped = []

    def log(self, msg: str) -> None:
        prefix = "[CHECK-ONLY] " if self.check_only else ""
        print(f"{prefix}{msg}")

    def log_verbose(self, msg: str) -> None:
        if self.verbose:
            self.log(msg)

    def section(self, title: str) -> None:
        self.log(f"==> {title}")

    def status(self, name: str, state: str, detail: Optional[str] = None) -> None:
        """Log one `name: STATE` line, as used for fact reports."""
        line = f"  {name}: {state}"
        if detail:
            line += f" ({detail})"
        self.log(line)

    def record_change(self, description: str) -> None:
        self.changes.append(description)

    def record_skip(self, name: str, reason: str) -> None:
        self.skipped.append(f"{name} ({reason})")
        self.log_verbose(f"Skipping {name}: {reason}")

    def summarize(self, title: str = "Summary") -> None:
        """
        Print what this run changed and what it left alone.

        Args:
            title: Heading for the summary block
        """
        self.log("")
        self.log(self.RULE)
        self.log(title)
        if self.check_only:
            self.log("Check-only run - no changes were made")
        elif self.changes:
            self.log(f"Changes made: {len(self.changes)}")
            for change in self.changes:
                self.log(f"  - {change}")
        else:
            self.log("No changes made")
        if self.skipped:
            self.log(f"Skipped: {len(self.skipped)}")
            for skipped in self.skipped:
                self.log(f"  - {skipped}")
        self.log(self.RULE)
