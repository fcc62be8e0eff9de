"""Tests for the ubuntu-harden command line."""

import os
import shutil

import pytest

import ubuntu_harden
from hardening.config import HardeningConfig
from hardening.reconciler import RunMode, RunResult


def parse(*argv):
    return ubuntu_harden.build_parser().parse_args(list(argv))


@pytest.mark.parametrize("argv,mode", [
    (["ssh"], RunMode.APPLY),
    (["ssh", "--check"], RunMode.CHECK_ONLY),
    (["ssh", "--check-only"], RunMode.CHECK_ONLY),
    (["rpcbind", "-n"], RunMode.APPLY_UNATTENDED),
    (["ip-forward", "--backout"], RunMode.BACKOUT),
    (["all", "--restore"], RunMode.BACKOUT),
])
def test_mode_flags(argv, mode):
    assert ubuntu_harden.mode_from_args(parse(*argv)) is mode


def test_mode_flags_are_exclusive():
    with pytest.raises(SystemExit):
        parse("ssh", "--check", "--backout")


def test_purge_only_on_rpcbind_and_all():
    assert parse("rpcbind", "--purge").purge
    assert parse("all", "-n", "--purge").purge
    with pytest.raises(SystemExit):
        parse("ssh", "--purge")


def test_no_command_prints_help(capsys):
    assert ubuntu_harden.main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_info_does_not_need_root(monkeypatch, capsys, tmp_path):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    monkeypatch.setattr(shutil, "which", lambda name: None if name == "ss" else f"/usr/bin/{name}")
    config_file = tmp_path / "config.toml"

    assert ubuntu_harden.main(["info", "--config", str(config_file)]) == 0
    out = capsys.readouterr().out
    assert f"Config File: {config_file}" in out
    assert "systemctl: /usr/bin/systemctl" in out
    assert "WARNING: ss not found" in out


def test_non_root_is_refused(monkeypatch, capsys):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    assert ubuntu_harden.main(["ssh", "--check"]) == 1
    assert "must be run as root" in capsys.readouterr().err


def test_bad_config_is_reported(monkeypatch, capsys, tmp_path):
    monkeypatch.setattr(os, "geteuid", lambda: 0)
    assert ubuntu_harden.main(["ssh", "--config", str(tmp_path / "missing.toml")]) == 1
    assert "Error: Config file not found" in capsys.readouterr().err


def fake_result(name: str, ok: bool) -> RunResult:
    return RunResult(target=name, mode=RunMode.CHECK_ONLY, satisfied_after=ok)


@pytest.fixture
def stub_subsystems(monkeypatch):
    """Replace each subsystem run with a canned result; returns the call log."""
    calls = []
    outcomes = {"ssh": True, "rpcbind": True, "ip_forward": True}

    def stub(name):
        def run(self, mode, **kwargs):
            calls.append((name, mode, kwargs))
            result = fake_result(name, outcomes[name])
            self.results.append(result)
            return result
        return run

    for name in outcomes:
        monkeypatch.setattr(ubuntu_harden.UbuntuHarden, f"harden_{name}", stub(name))
    monkeypatch.setattr(os, "geteuid", lambda: 0)
    monkeypatch.setattr(ubuntu_harden, "load_config", lambda path: HardeningConfig())
    return calls, outcomes


def test_rpcbind_purge_is_passed_through(stub_subsystems):
    calls, _ = stub_subsystems
    assert ubuntu_harden.main(["rpcbind", "-n", "--purge"]) == 0
    assert calls == [("rpcbind", RunMode.APPLY_UNATTENDED, {"purge": True})]


def test_all_runs_every_subsystem(stub_subsystems, capsys):
    calls, _ = stub_subsystems
    assert ubuntu_harden.main(["all", "--check"]) == 0
    assert [name for name, _, _ in calls] == ["ssh", "rpcbind", "ip_forward"]
    assert "ip_forward: OK" in capsys.readouterr().out


def test_all_fails_if_any_subsystem_fails(stub_subsystems, capsys):
    calls, outcomes = stub_subsystems
    outcomes["rpcbind"] = False
    assert ubuntu_harden.main(["all", "-n"]) == 1
    assert "rpcbind: FAILED" in capsys.readouterr().out
    assert len(calls) == 3


def test_exit_code_without_results():
    assert ubuntu_harden.UbuntuHarden(HardeningConfig()).exit_code == 1
