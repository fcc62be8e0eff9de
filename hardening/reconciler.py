"""Check-apply-verify reconciliation of declared system state.

A Target is a set of Facts describing "hardened" (or "restored") for one
subsystem. A Collaborator reads facts from the live system and performs
Actions. The Reconciler observes, judges, applies the actions needed to
close the gap, and observes again; the re-observation is authoritative.
"""

import subprocess
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from .base import BaseOrchestrator
from .errors import ActionFailure, HardeningError, ObservationFailure, ValidationFailure
from .prompts import confirm

InteractionFn = Callable[[str, bool], bool]


class _Unknown:
    """Sentinel for a fact whose value could not be read."""

    def __repr__(self) -> str:
        return "UNKNOWN"


UNKNOWN: Any = _Unknown()


class Comparator(Enum):
    EXACT = "exact"
    NOT_CONTAINS = "not-contains"
    BOOLEAN = "boolean"

    def evaluate(self, observed: Any, desired: Any) -> bool:
        """Return True if the observed value satisfies the desired one."""
        if observed is UNKNOWN:
            return False
        if self is Comparator.EXACT:
            return observed == desired
        if self is Comparator.NOT_CONTAINS:
            return desired not in observed
        return bool(observed) is bool(desired)


@dataclass(frozen=True)
class Fact:
    name: str
    desired: Any
    comparator: Comparator = Comparator.EXACT
    observed: Any = UNKNOWN
    optional: bool = False  # diagnostic only; a failed read is not an error
    informational: bool = False  # steers action selection, not the judgment
    description: str = ""

    @property
    def known(self) -> bool:
        return self.observed is not UNKNOWN

    @property
    def satisfied(self) -> bool:
        return self.comparator.evaluate(self.observed, self.desired)


@dataclass(frozen=True)
class Target:
    name: str
    facts: tuple[Fact, ...]

    def fact_names(self) -> list[str]:
        return [fact.name for fact in self.facts]


@dataclass(frozen=True)
class Action:
    name: str
    facts: tuple[str, ...] = ()
    destructive: bool = False
    reversible: bool = True
    authorized: bool = False
    activates: bool = False  # makes written config live; validate first
    prompt: Optional[str] = None
    default: bool = True


class RunMode(Enum):
    CHECK_ONLY = "check-only"
    APPLY = "apply"
    APPLY_UNATTENDED = "apply-unattended"
    BACKOUT = "backout"


class Judgment(Enum):
    SATISFIED = "satisfied"
    NOT_SATISFIED = "not satisfied"
    INDETERMINATE = "indeterminate"


@dataclass
class RunError:
    source: str
    kind: str
    message: str
    fatal: bool = False

    def __str__(self) -> str:
        return f"{self.source}: {self.kind}: {self.message}"


@dataclass
class SkippedAction:
    name: str
    reason: str


@dataclass
class RunResult:
    target: str
    mode: RunMode
    satisfied_before: bool = False
    satisfied_after: bool = False
    judgment_before: Judgment = Judgment.INDETERMINATE
    judgment_after: Judgment = Judgment.INDETERMINATE
    actions_applied: list[str] = field(default_factory=list)
    actions_skipped: list[SkippedAction] = field(default_factory=list)
    errors: list[RunError] = field(default_factory=list)
    observations: list[Fact] = field(default_factory=list)
    indeterminate: list[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return self.satisfied_after and not self.errors and not self.aborted

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class Collaborator:
    """
    Read/write access to one subsystem of the live system.

    Subclasses implement read() and write(); validate() is optional.
    """

    def begin_observation(self) -> None:
        """Called before each pass over a target's facts; drop cached reads here."""

    def read(self, fact_name: str) -> Any:
        """Return the current value of a named fact or raise ObservationFailure."""
        raise NotImplementedError

    def write(self, action: Action) -> None:
        """Perform one action. Must succeed as a no-op when already applied."""
        raise NotImplementedError

    def validate(self) -> None:
        """Check written configuration before it is activated."""


@dataclass(frozen=True)
class Plan:
    """
    Forward hardening and backout for one subsystem.

    The two sides are validated independently; they share fact names but
    backout is not the forward action list replayed in reverse.
    """

    harden: Target
    forward: tuple[Action, ...]
    restore: Target
    backout: tuple[Action, ...]

    def for_mode(self, mode: RunMode) -> tuple[Target, tuple[Action, ...]]:
        if mode is RunMode.BACKOUT:
            return self.restore, self.backout
        return self.harden, self.forward


def judge(facts: Sequence[Fact]) -> Judgment:
    """Judge a set of observed facts, ignoring unknown and informational ones."""
    known = [fact for fact in facts if fact.known and not fact.informational]
    if not known:
        return Judgment.INDETERMINATE
    if all(fact.satisfied for fact in known):
        return Judgment.SATISFIED
    return Judgment.NOT_SATISFIED


class Reconciler(BaseOrchestrator):
    """Runs the observe, judge, apply, verify cycle for one target."""

    def __init__(self, verbose: bool = False):
        super().__init__(check_only=False, verbose=verbose)

    def run(
        self,
        target: Target,
        actions: Sequence[Action],
        collaborator: Collaborator,
        mode: RunMode,
        interact: Optional[InteractionFn] = None,
    ) -> RunResult:
        """
        Reconcile a target against the live system.

        Args:
            target: Facts that define the desired state
            actions: Corrective actions, in execution order
            collaborator: Reads facts and performs actions
            mode: How far the run may go in changing the system
            interact: Yes/no callback for interactive decisions

        Returns:
            RunResult describing before/after state and what was done
        """
        interact = interact or confirm
        self.reset(check_only=mode is RunMode.CHECK_ONLY)
        result = RunResult(target=target.name, mode=mode)

        self.section(f"Checking {target.name}")
        result.judgment_before = self._observe(target, collaborator, result)
        result.satisfied_before = result.judgment_before is Judgment.SATISFIED
        self._report_facts(result)

        force = False
        if result.satisfied_before and mode is not RunMode.BACKOUT:
            if mode is not RunMode.APPLY:
                self.log(f"{target.name} already satisfied - nothing to do.")
                return self._finish_unchanged(result)
            if not interact(f"{target.name} already satisfied. Reapply anyway?", False):
                self.log("Exiting without changes.")
                return self._finish_unchanged(result)
            force = True

        if mode is not RunMode.CHECK_ONLY:
            selected = self._select(actions, result, force)
            selected = self._gate(selected, mode, result, interact)
            self._apply(selected, collaborator, result)
            if result.aborted:
                self._report_result(result)
                return result

        self.section(f"Verifying {target.name}")
        result.judgment_after = self._observe(target, collaborator, result)
        result.satisfied_after = result.judgment_after is Judgment.SATISFIED
        self._report_facts(result)
        self._report_result(result)
        return result

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    def _observe(self, target: Target, collaborator: Collaborator, result: RunResult) -> Judgment:
        observed = []
        indeterminate = []
        already_failed = {error.source for error in result.errors}
        collaborator.begin_observation()
        for fact in target.facts:
            try:
                value = collaborator.read(fact.name)
            except (HardeningError, subprocess.CalledProcessError, OSError) as e:
                indeterminate.append(fact.name)
                # One error per fact, however many passes could not read it
                if not fact.optional and fact.name not in already_failed:
                    result.errors.append(_run_error(fact.name, e, ObservationFailure))
                self.log_verbose(f"  could not read {fact.name}: {e}")
                observed.append(fact)
                continue
            observed.append(replace(fact, observed=value))
        result.observations = observed
        result.indeterminate = indeterminate
        return judge(observed)

    def _finish_unchanged(self, result: RunResult) -> RunResult:
        result.judgment_after = result.judgment_before
        result.satisfied_after = result.satisfied_before
        self._report_result(result)
        return result

    # -------------------------------------------------------------------------
    # Selection and gating
    # -------------------------------------------------------------------------

    def _select(self, actions: Sequence[Action], result: RunResult, force: bool) -> list[Action]:
        if force:
            return list(actions)

        observed = {fact.name: fact for fact in result.observations}
        selected = []
        for action in actions:
            facts = [observed.get(name) for name in action.facts]
            if facts and all(fact is not None and fact.satisfied for fact in facts):
                self._skip(action, "already satisfied", result)
                continue
            selected.append(action)
        return selected

    def _gate(
        self,
        actions: list[Action],
        mode: RunMode,
        result: RunResult,
        interact: InteractionFn,
    ) -> list[Action]:
        gated = []
        answers: dict[str, bool] = {}  # actions sharing a prompt get one question
        for action in actions:
            if mode is RunMode.APPLY:
                if action.destructive:
                    question = action.prompt or f"{action.name} now? (destructive)"
                    if not action.reversible:
                        question += " This cannot be undone."
                    allowed = interact(question, False)
                elif action.prompt:
                    if action.prompt not in answers:
                        answers[action.prompt] = interact(action.prompt, action.default)
                    allowed = answers[action.prompt]
                else:
                    allowed = True
                if not allowed:
                    self._skip(action, "declined", result)
                    continue
            elif mode is RunMode.APPLY_UNATTENDED and action.destructive and not action.authorized:
                self._skip(action, "not authorized", result)
                continue
            gated.append(action)
        return gated

    def _skip(self, action: Action, reason: str, result: RunResult) -> None:
        result.actions_skipped.append(SkippedAction(action.name, reason))
        self.record_skip(action.name, reason)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    def _apply(self, actions: list[Action], collaborator: Collaborator, result: RunResult) -> None:
        if actions:
            self.section(f"Applying {len(actions)} action(s)")

        validated = False
        pending_writes = False
        for action in actions:
            if action.activates and not validated:
                if not self._validate(collaborator, result):
                    return
                validated = True

            self.log(f"  - {action.name}")
            try:
                collaborator.write(action)
            except HardeningError as e:
                result.errors.append(_run_error(action.name, e, ActionFailure))
                if e.fatal:
                    result.aborted = True
                    return
                self.log(f"    FAILED: {e}")
                continue
            except (subprocess.CalledProcessError, OSError) as e:
                result.errors.append(_run_error(action.name, e, ActionFailure))
                self.log(f"    FAILED: {e}")
                continue

            result.actions_applied.append(action.name)
            self.record_change(action.name)
            if action.activates:
                pending_writes = False
            else:
                pending_writes = True
                validated = False

        if pending_writes:
            self._validate(collaborator, result)

    def _validate(self, collaborator: Collaborator, result: RunResult) -> bool:
        try:
            collaborator.validate()
        except HardeningError as e:
            error = _run_error("validate", e, ValidationFailure)
            error.fatal = True
            result.errors.append(error)
            result.aborted = True
            return False
        return True

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _report_facts(self, result: RunResult) -> None:
        for fact in result.observations:
            if not fact.known:
                status = "UNKNOWN"
            elif fact.informational:
                status = f"INFO {fact.observed}"
            elif fact.satisfied:
                status = "OK"
            else:
                status = "MISMATCH"
            self.status(fact.name, status, fact.description or None)
            if fact.known:
                self.log_verbose(f"      observed: {fact.observed}")
            if not fact.known or not fact.satisfied:
                self.log_verbose(f"      desired:  {fact.desired} ({fact.comparator.value})")

    def _report_result(self, result: RunResult) -> None:
        for error in result.errors:
            self.log(f"ERROR: {error}")
        if result.indeterminate:
            self.log(f"Indeterminate: {', '.join(result.indeterminate)}")

        self.summarize(f"{result.target} ({result.mode.value})")
        if result.aborted:
            fatal = next(error for error in reversed(result.errors) if error.fatal)
            self.log(f"RESULT: {result.target} run ABORTED before finishing - {fatal}. State was not re-verified.")
        elif result.judgment_after is Judgment.INDETERMINATE:
            self.log(f"RESULT: {result.target} is indeterminate - no fact could be read.")
        elif result.satisfied_after and not result.errors:
            self.log(f"RESULT: {result.target} is satisfied.")
        elif result.satisfied_after:
            self.log(f"RESULT: {result.target} is satisfied, but errors were reported.")
        else:
            self.log(f"RESULT: {result.target} is NOT satisfied. Review status above.")


def _run_error(source: str, error: Exception, default_kind: type) -> RunError:
    """Tag an exception with the fact or action that produced it."""
    kind = type(error).__name__ if isinstance(error, HardeningError) else default_kind.__name__
    return RunError(
        source=source,
        kind=kind,
        message=str(error),
        fatal=getattr(error, "fatal", False),
    )
