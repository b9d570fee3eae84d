#!/usr/bin/env python3
"""
codeintel-mcp Daemon Manager

Ensures a single instance of the codeintel-mcp daemon is running per port.
Uses a PID file to track the daemon process.

Usage:
    codeintel-mcp-manager start    # Start daemon if not running
    codeintel-mcp-manager stop     # Stop the daemon
    codeintel-mcp-manager status   # Check if daemon is running
    codeintel-mcp-manager restart  # Restart the daemon
    codeintel-mcp-manager ensure   # Ensure running (for MCP startup)
"""

import argparse
import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import requests

from .config import ConfigError, load_config

RUN_DIR = Path("/tmp/codeintel_mcp")
STARTUP_TIMEOUT = 15  # seconds
HEALTH_TIMEOUT = 2  # seconds


def pid_file(port: int) -> Path:
    return RUN_DIR / f"daemon-{port}.pid"


def log_file(port: int) -> Path:
    return RUN_DIR / f"daemon-{port}.log"


def base_url(host: str, port: int) -> str:
    return f"http://{host}:{port}"


def ensure_run_dir():
    """Ensure run directory exists with group-writable permissions."""
    if RUN_DIR.exists():
        return
    RUN_DIR.mkdir(mode=0o770, parents=True)
    try:
        import grp

        staff_gid = grp.getgrnam("staff").gr_gid
        os.chown(RUN_DIR, -1, staff_gid)
    except (ImportError, KeyError, PermissionError):
        pass  # no 'staff' group on this system
    os.chmod(RUN_DIR, 0o770)


def _remove_pid_file(port: int):
    try:
        pid_file(port).unlink(missing_ok=True)
    except PermissionError:
        pass


def get_pid(port: int) -> int | None:
    """Get PID from PID file if it exists and process is running."""
    path = pid_file(port)
    if not path.exists():
        return None

    try:
        pid = int(path.read_text().strip())
        # Check if process is actually running
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        # PID file exists but process is dead or inaccessible
        _remove_pid_file(port)
        return None


def is_healthy(host: str, port: int) -> bool:
    """Check if daemon is responding to health checks."""
    try:
        resp = requests.get(f"{base_url(host, port)}/health", timeout=HEALTH_TIMEOUT)
        return resp.status_code == 200
    except requests.RequestException:
        return False


def daemon_command(port: int, workspaces: list[str] | None = None) -> list[str]:
    command = [sys.executable, "-m", "codeintel_mcp.daemon", "--port", str(port)]
    for workspace in workspaces or []:
        command += ["--workspace", workspace]
    return command


def start_daemon(host: str, port: int, workspaces: list[str] | None = None) -> bool:
    """Start the daemon if not already running."""
    pid = get_pid(port)
    if pid and is_healthy(host, port):
        print(f"Daemon already running (PID {pid})")
        return True

    # Clean up stale PID file
    if pid:
        print(f"Stale PID {pid}, cleaning up...")
        try:
            os.kill(pid, signal.SIGKILL)
            time.sleep(0.5)
        except ProcessLookupError:
            pass
        _remove_pid_file(port)

    # Check if port is in use by something else
    if is_healthy(host, port):
        print(f"Port {port} already has a healthy daemon (external)")
        return True

    print(f"Starting codeintel-mcp daemon on port {port}...")
    ensure_run_dir()

    log_path = log_file(port)
    with open(log_path, "a") as log:
        os.chmod(log_path, 0o660)
        env = os.environ.copy()
        package_root = str(Path(__file__).parent.parent)
        env["PYTHONPATH"] = os.pathsep.join(p for p in (package_root, env.get("PYTHONPATH")) if p)
        process = subprocess.Popen(
            daemon_command(port, workspaces),
            stdout=log,
            stderr=log,
            env=env,
            start_new_session=True,  # Detach from parent
        )

    # Write PID file with group-writable permissions
    path = pid_file(port)
    path.write_text(str(process.pid))
    os.chmod(path, 0o660)

    print(f"Waiting for daemon to initialize (PID {process.pid})...")
    for _ in range(STARTUP_TIMEOUT * 2):
        if is_healthy(host, port):
            print(f"Daemon started successfully (PID {process.pid})")
            return True
        if process.poll() is not None:
            break
        time.sleep(0.5)

    print("ERROR: Daemon failed to start within timeout")
    print(f"Check logs at: {log_path}")
    return False


def stop_daemon(port: int) -> bool:
    """Stop the daemon."""
    pid = get_pid(port)
    if not pid:
        print("Daemon not running")
        return True

    print(f"Stopping daemon (PID {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)

        # Wait for graceful shutdown
        for _ in range(10):
            try:
                os.kill(pid, 0)
                time.sleep(0.5)
            except ProcessLookupError:
                break
        else:
            print("Force killing...")
            os.kill(pid, signal.SIGKILL)

        _remove_pid_file(port)
        print("Daemon stopped")
        return True
    except ProcessLookupError:
        _remove_pid_file(port)
        print("Daemon was not running")
        return True
    except PermissionError:
        print(f"ERROR: Permission denied to stop PID {pid}")
        return False


def status(host: str, port: int) -> dict:
    """Get daemon status."""
    pid = get_pid(port)
    healthy = is_healthy(host, port)

    result = {
        "running": pid is not None,
        "healthy": healthy,
        "pid": pid,
        "port": port,
        "pid_file": str(pid_file(port)),
        "log_file": str(log_file(port)),
    }

    if healthy:
        try:
            resp = requests.get(f"{base_url(host, port)}/info", timeout=HEALTH_TIMEOUT)
            if resp.status_code == 200:
                result["info"] = resp.json()
        except (requests.RequestException, ValueError):
            pass

    return result


def print_status(host: str, port: int):
    """Print human-readable status."""
    s = status(host, port)

    if s["healthy"]:
        print("✓ Daemon is running and healthy")
        print(f"  PID: {s['pid']}")
        print(f"  Port: {s['port']}")
        if "info" in s:
            info = s["info"]
            print(f"  Version: {info.get('version', '?')}")
            print(f"  Languages: {', '.join(info.get('languages', [])) or 'none'}")
            print(f"  Requests: {info.get('request_count', 0)}")
    elif s["running"]:
        print("⚠ Daemon process exists but not responding")
        print(f"  PID: {s['pid']}")
        print(f"  Check logs: {s['log_file']}")
    else:
        print("✗ Daemon is not running")

    print(f"\nPID file: {s['pid_file']}")
    print(f"Log file: {s['log_file']}")


def ensure_running(host: str, port: int, workspaces: list[str] | None = None) -> bool:
    """Ensure daemon is running (idempotent - safe to call multiple times)."""
    if is_healthy(host, port):
        return True
    return start_daemon(host, port, workspaces)


def main(argv: list[str] | None = None):
    try:
        config = load_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    parser = argparse.ArgumentParser(description="codeintel-mcp daemon manager")
    parser.add_argument(
        "command",
        choices=["start", "stop", "restart", "status", "ensure"],
        help="Command to execute"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.port,
        help=f"Port for daemon (default: {config.port})"
    )
    parser.add_argument(
        "--workspace",
        action="append",
        dest="workspaces",
        metavar="PATH",
        help="Workspace root passed to a newly started daemon; repeatable"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON"
    )

    args = parser.parse_args(argv)
    host = config.host

    if args.command == "start":
        success = start_daemon(host, args.port, args.workspaces)
        sys.exit(0 if success else 1)

    elif args.command == "stop":
        success = stop_daemon(args.port)
        sys.exit(0 if success else 1)

    elif args.command == "restart":
        stop_daemon(args.port)
        time.sleep(1)
        success = start_daemon(host, args.port, args.workspaces)
        sys.exit(0 if success else 1)

    elif args.command == "status":
        if args.json:
            print(json.dumps(status(host, args.port), indent=2))
        else:
            print_status(host, args.port)
        sys.exit(0 if is_healthy(host, args.port) else 1)

    elif args.command == "ensure":
        success = ensure_running(host, args.port, args.workspaces)
        sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
