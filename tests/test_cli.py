"""End-to-end tests for command dispatch with a fake executor."""

from __future__ import annotations

import pytest

from lbfleet import cli

from tests.fakes import FakeExecutor


@pytest.fixture
def fake_executor(monkeypatch):
    executor = FakeExecutor()
    monkeypatch.setattr(cli, "_open_executor", lambda settings: executor)
    return executor


@pytest.fixture
def inventory(tmp_path):
    path = tmp_path / "hosts.yaml"
    path.write_text("hosts:\n  - lb-a\n  - lb-b\n")
    return path


@pytest.fixture
def config(tmp_path, git_repo):
    renderer = tmp_path / "render.sh"
    renderer.write_text('#!/bin/sh\necho "# host $1 $2"\n')
    renderer.chmod(0o755)
    path = tmp_path / "lbfleet.yaml"
    path.write_text(
        f"repository: {git_repo}\n"
        f"frontend_dir: {git_repo / 'nginx'}\n"
        f"tls_dir: {git_repo / 'tls'}\n"
        f"render_command: [{renderer}]\n"
    )
    return path


def test_help(capsys):
    assert cli.main(["help"]) == 0
    assert "init-host" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage:" in capsys.readouterr().out


def test_unknown_command(capsys, fake_executor):
    assert cli.main(["frobnicate"]) == 1
    err = capsys.readouterr().err
    assert "unknown command 'frobnicate'" in err
    assert "usage:" in err
    assert fake_executor.calls == []


def test_status(capsys, fake_executor, inventory):
    fake_executor.fail("lb-b", "run_privileged", match="keepalived")

    assert cli.main(["-i", str(inventory), "status"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out == ["0\tlb-a\tActive\tActive", "1\tlb-b\tActive\tFailed"]
    assert fake_executor.closed is True


def test_status_without_inventory(capsys, fake_executor, tmp_path):
    assert cli.main(["-i", str(tmp_path / "nope.yaml"), "status"]) == 1
    assert "needs a host inventory" in capsys.readouterr().err
    assert fake_executor.calls == []


def test_push(capsys, fake_executor, inventory, config):
    assert cli.main(["-c", str(config), "-i", str(inventory), "push"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out == ["pushed\t0\tlb-a", "pushed\t1\tlb-b"]
    writes = [c for c in fake_executor.calls if c[0] == "run_privileged"]
    assert [w[4] for w in writes] == [b"# host 0 lb-a\n", b"# host 1 lb-b\n"]


def test_push_dirty_source(capsys, fake_executor, inventory, config, git_repo):
    (git_repo / "nginx" / "nginx.conf").write_text("uncommitted\n")

    assert cli.main(["-c", str(config), "-i", str(inventory), "push"]) == 1
    assert "uncommitted changes" in capsys.readouterr().err
    assert fake_executor.calls == []


def test_push_host_failure(capsys, fake_executor, inventory, config):
    fake_executor.fail("lb-a", "sync_tree")

    assert cli.main(["-c", str(config), "-i", str(inventory), "push"]) == 1
    captured = capsys.readouterr()
    assert "lb-a: frontend config sync failed" in captured.err
    assert fake_executor.calls_for("lb-b") == []


def test_init_host_requires_address(capsys, fake_executor):
    assert cli.main(["init-host"]) == 1
    assert "No hosts specified" in capsys.readouterr().err
    assert fake_executor.calls == []


def test_init_host(capsys, fake_executor, tmp_path):
    (tmp_path / "bootstrap").mkdir()
    config = tmp_path / "lbfleet.yaml"
    config.write_text("bootstrap_dir: bootstrap\n")

    assert cli.main(["-c", str(config), "init-host", "lb-c", "lb-d"]) == 0
    assert [c[1] for c in fake_executor.calls] == ["lb-c", "lb-d"]
    assert capsys.readouterr().out.splitlines() == ["initialized\tlb-c", "initialized\tlb-d"]


def test_init_host_failure_exit_code(fake_executor, tmp_path):
    fake_executor.fail("lb-c", "sync_tree")

    assert cli.main(["init-host", "lb-c", "lb-d"]) == 1
    assert [c[1] for c in fake_executor.calls] == ["lb-c", "lb-d"]


def test_push_keep_going(capsys, fake_executor, tmp_path, config):
    inventory = tmp_path / "hosts.yaml"
    inventory.write_text("hosts: [lb-a, lb-b, lb-c]\n")
    fake_executor.fail("lb-a", "sync_tree")

    assert cli.main(["-c", str(config), "-i", str(inventory), "--keep-going", "push"]) == 1

    captured = capsys.readouterr()
    assert captured.out.splitlines() == ["pushed\t1\tlb-b", "pushed\t2\tlb-c"]
    assert "lb-a: frontend config sync failed" in captured.err


def test_push_skips_active_unless_allowed(capsys, fake_executor, tmp_path, config):
    inventory = tmp_path / "hosts.yaml"
    inventory.write_text("hosts:\n  - address: lb-a\n    active: true\n  - lb-b\n")

    assert cli.main(["-c", str(config), "-i", str(inventory), "push"]) == 0
    assert capsys.readouterr().out.splitlines() == ["pushed\t1\tlb-b", "skipped\t0\tlb-a\t(active)"]
    assert fake_executor.calls_for("lb-a") == []

    assert cli.main(["-c", str(config), "-i", str(inventory), "--allow-active", "push"]) == 0
    assert capsys.readouterr().out.splitlines() == ["pushed\t0\tlb-a", "pushed\t1\tlb-b"]


def test_push_outside_a_repository(capsys, fake_executor, inventory, tmp_path, monkeypatch):
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    (tmp_path / "plain").mkdir()
    config = tmp_path / "lbfleet.yaml"
    config.write_text("repository: plain\n")

    assert cli.main(["-c", str(config), "-i", str(inventory), "push"]) == 1
    err = capsys.readouterr().err
    assert "error: git status --porcelain failed" in err
    assert fake_executor.calls == []


def test_unexpected_error_prints_one_line(capsys, monkeypatch, inventory):
    def _broken(settings):
        raise RuntimeError("executor exploded")

    monkeypatch.setattr(cli, "_open_executor", _broken)

    assert cli.main(["-i", str(inventory), "status"]) == 1
    err = capsys.readouterr().err
    assert "error: executor exploded" in err
    assert "Traceback" not in err


def test_malformed_settings_prints_one_line(capsys, fake_executor, inventory, tmp_path):
    config = tmp_path / "lbfleet.yaml"
    config.write_text("services: [nginx, keepalived]\n")

    assert cli.main(["-c", str(config), "-i", str(inventory), "status"]) == 1
    err = capsys.readouterr().err
    assert "'services' must be a mapping" in err
    assert "Traceback" not in err
    assert fake_executor.calls == []


def test_unreadable_inventory_degrades_to_warning(capsys, fake_executor, tmp_path):
    (tmp_path / "hosts.yaml").mkdir()

    assert cli.main(["-i", str(tmp_path / "hosts.yaml"), "status"]) == 1
    err = capsys.readouterr().err
    assert "needs a host inventory" in err
    assert "Traceback" not in err


@pytest.mark.parametrize("command", ["status", "push", "dashboard"])
def test_host_arguments_rejected_outside_init_host(capsys, fake_executor, inventory, command):
    assert cli.main(["-i", str(inventory), command, "lb-a"]) == 1
    assert f"error: {command} takes no host arguments" in capsys.readouterr().err
    assert fake_executor.calls == []
