"""Shared test fixtures for ubuntu-harden tests."""

from __future__ import annotations

import subprocess
from typing import Any, Callable

import pytest

from hardening.errors import ObservationFailure
from hardening.reconciler import Action, Collaborator, Comparator, Fact, Plan, Target

EXPOSED = {"svc.active": True, "svc.masked": False, "pkg.installed": True}
HARDENED = {"svc.active": False, "svc.masked": True, "pkg.installed": False}


class FakeCollaborator(Collaborator):
    """In-memory subsystem whose actions flip facts to fixed values."""

    def __init__(
        self,
        state: dict[str, Any],
        effects: dict[str, dict[str, Any]] | None = None,
        failing_reads: tuple[str, ...] = (),
        failing_writes: dict[str, Exception] | None = None,
        validation_error: Exception | None = None,
    ):
        self.state = dict(state)
        self.effects = effects or {}
        self.failing_reads = failing_reads
        self.failing_writes = failing_writes or {}
        self.validation_error = validation_error
        self.writes: list[str] = []
        self.events: list[str] = []

    def read(self, fact_name: str) -> Any:
        if fact_name in self.failing_reads:
            raise ObservationFailure(f"cannot read {fact_name}")
        return self.state[fact_name]

    def write(self, action: Action) -> None:
        self.writes.append(action.name)
        self.events.append(f"write:{action.name}")
        if action.name in self.failing_writes:
            raise self.failing_writes[action.name]
        self.state.update(self.effects.get(action.name, {}))

    def validate(self) -> None:
        self.events.append("validate")
        if self.validation_error is not None:
            raise self.validation_error


EFFECTS = {
    "disable svc": {"svc.active": False},
    "mask svc": {"svc.masked": True},
    "purge pkg": {"pkg.installed": False},
    "install pkg": {"pkg.installed": True},
    "unmask svc": {"svc.masked": False},
    "enable svc": {"svc.active": True},
}


def build_fake_plan(purge_authorized: bool = True) -> Plan:
    harden = Target("svc exposure", (
        Fact("svc.active", False, Comparator.BOOLEAN),
        Fact("svc.masked", True, Comparator.BOOLEAN),
        Fact("pkg.installed", False, Comparator.BOOLEAN),
    ))
    forward = (
        Action("disable svc", facts=("svc.active",)),
        Action("mask svc", facts=("svc.masked",)),
        Action("purge pkg", facts=("pkg.installed",), destructive=True, authorized=purge_authorized),
    )
    restore = Target("svc restored", (
        Fact("pkg.installed", True, Comparator.BOOLEAN),
        Fact("svc.masked", False, Comparator.BOOLEAN),
        Fact("svc.active", True, Comparator.BOOLEAN),
    ))
    backout = (
        Action("install pkg", facts=("pkg.installed",)),
        Action("unmask svc", facts=("svc.masked",)),
        Action("enable svc", facts=("svc.active",)),
    )
    return Plan(harden, forward, restore, backout)


@pytest.fixture
def fake_plan() -> Plan:
    return build_fake_plan()


@pytest.fixture
def exposed() -> FakeCollaborator:
    return FakeCollaborator(EXPOSED, effects=EFFECTS)


@pytest.fixture
def hardened() -> FakeCollaborator:
    return FakeCollaborator(HARDENED, effects=EFFECTS)


class Answers:
    """Scripted answers for the interaction callback."""

    def __init__(self, *answers: bool):
        self.answers = list(answers)
        self.questions: list[tuple[str, bool]] = []

    def __call__(self, question: str, default: bool) -> bool:
        self.questions.append((question, default))
        return self.answers.pop(0)


class FakeRun:
    """Stand-in for subprocess.run that answers by command prefix."""

    def __init__(self, responses: dict[tuple[str, ...], Any] | None = None):
        self.responses = responses or {}
        self.calls: list[list[str]] = []

    def __call__(self, cmd, *args, **kwargs) -> subprocess.CompletedProcess:
        cmd = [str(part) for part in cmd]
        self.calls.append(cmd)
        best = None
        for prefix, response in self.responses.items():
            if tuple(cmd[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best[0])):
                best = (prefix, response)
        if best is None:
            return subprocess.CompletedProcess(cmd, 0, "", "")
        response = best[1]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(cmd)
        returncode, stdout, stderr = response
        if kwargs.get("check") and returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, stdout, stderr)
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def ran(self, *prefix: str) -> bool:
        return any(tuple(call[: len(prefix)]) == prefix for call in self.calls)


@pytest.fixture
def fake_run() -> Callable[..., FakeRun]:
    return FakeRun
