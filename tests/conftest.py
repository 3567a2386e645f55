"""Shared pytest fixtures."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from lbfleet.config import Settings
from lbfleet.inventory import FleetRegistry

from tests.fakes import FakeExecutor


def init_git_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init"], cwd=str(path), check=True, capture_output=True)
    subprocess.run(
        ["git", "config", "user.email", "test@test.local"],
        cwd=str(path), check=True, capture_output=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "Test"],
        cwd=str(path), check=True, capture_output=True,
    )
    (path / "nginx").mkdir()
    (path / "nginx" / "nginx.conf").write_text("worker_processes auto;\n")
    (path / "tls").mkdir()
    (path / "tls" / "site.pem").write_text("-----BEGIN CERTIFICATE-----\n")
    subprocess.run(["git", "add", "."], cwd=str(path), check=True, capture_output=True)
    subprocess.run(
        ["git", "commit", "-m", "init"],
        cwd=str(path), check=True, capture_output=True,
    )
    return path


@pytest.fixture
def git_repo(tmp_path):
    """A committed, clean configuration repository."""
    return init_git_repo(tmp_path / "lb-config")


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def registry():
    return FleetRegistry.from_addresses(["lb-a", "lb-b"])


@pytest.fixture
def settings(tmp_path):
    for name in ("nginx", "tls", "bootstrap"):
        (tmp_path / name).mkdir()
    return Settings(
        repository=tmp_path,
        frontend_dir=tmp_path / "nginx",
        tls_dir=tmp_path / "tls",
        bootstrap_dir=tmp_path / "bootstrap",
    )
