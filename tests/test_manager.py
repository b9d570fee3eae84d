"""Tests for the daemon manager's PID bookkeeping and health checks."""

import os
import sys

import pytest
import requests

from codeintel_mcp import manager


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


@pytest.fixture(autouse=True)
def run_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(manager, "RUN_DIR", tmp_path / "run")
    manager.ensure_run_dir()
    return tmp_path / "run"


def test_paths_are_per_port(run_dir):
    assert manager.pid_file(9876) == run_dir / "daemon-9876.pid"
    assert manager.log_file(9100) == run_dir / "daemon-9100.log"


def test_get_pid_without_file():
    assert manager.get_pid(9876) is None


def test_get_pid_for_live_process():
    manager.pid_file(9876).write_text(str(os.getpid()))
    assert manager.get_pid(9876) == os.getpid()


def test_garbage_pid_file_removed():
    manager.pid_file(9876).write_text("not-a-pid")

    assert manager.get_pid(9876) is None
    assert not manager.pid_file(9876).exists()


def test_stale_pid_file_removed(monkeypatch):
    manager.pid_file(9876).write_text("424242")

    def kill(pid, sig):
        raise ProcessLookupError(pid)

    monkeypatch.setattr(manager.os, "kill", kill)

    assert manager.get_pid(9876) is None
    assert not manager.pid_file(9876).exists()


def test_is_healthy(monkeypatch):
    monkeypatch.setattr(manager.requests, "get", lambda url, timeout: FakeResponse(200))
    assert manager.is_healthy("localhost", 9876)

    monkeypatch.setattr(manager.requests, "get", lambda url, timeout: FakeResponse(503))
    assert not manager.is_healthy("localhost", 9876)


def test_unreachable_daemon_is_unhealthy(monkeypatch):
    def refuse(url, timeout):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(manager.requests, "get", refuse)
    assert not manager.is_healthy("localhost", 9876)


def test_status_includes_info(monkeypatch):
    info = {"name": "codeintel-mcp", "version": "1.0.0", "languages": ["python"], "request_count": 3}
    urls = []

    def get(url, timeout):
        urls.append(url)
        return FakeResponse(200, info if url.endswith("/info") else None)

    monkeypatch.setattr(manager.requests, "get", get)
    manager.pid_file(9100).write_text(str(os.getpid()))

    result = manager.status("localhost", 9100)

    assert result["running"] is True
    assert result["healthy"] is True
    assert result["pid"] == os.getpid()
    assert result["port"] == 9100
    assert result["info"] == info
    assert urls == ["http://localhost:9100/health", "http://localhost:9100/info"]


def test_print_status_not_running(monkeypatch, capsys):
    monkeypatch.setattr(manager, "is_healthy", lambda host, port: False)

    manager.print_status("localhost", 9876)

    assert "Daemon is not running" in capsys.readouterr().out


def test_stop_when_not_running(capsys):
    assert manager.stop_daemon(9876) is True
    assert "Daemon not running" in capsys.readouterr().out


def test_ensure_running_skips_start_when_healthy(monkeypatch):
    monkeypatch.setattr(manager, "is_healthy", lambda host, port: True)

    def start(*args):
        raise AssertionError("must not start a second daemon")

    monkeypatch.setattr(manager, "start_daemon", start)
    assert manager.ensure_running("localhost", 9876) is True


def test_start_reuses_external_daemon(monkeypatch, capsys):
    monkeypatch.setattr(manager, "is_healthy", lambda host, port: True)

    assert manager.start_daemon("localhost", 9876) is True
    assert "already has a healthy daemon" in capsys.readouterr().out
    assert not manager.pid_file(9876).exists()


def test_daemon_command():
    command = manager.daemon_command(9200, ["/src/a", "/src/b"])

    assert command == [
        sys.executable, "-m", "codeintel_mcp.daemon", "--port", "9200",
        "--workspace", "/src/a", "--workspace", "/src/b",
    ]
