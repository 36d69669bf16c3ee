import json
import os
import threading

from typer.testing import CliRunner

from compctl.cli.main import app
from compctl.config.loader import config_path
from compctl.runtime.daemon import DaemonMetadata, write_daemon_metadata

runner = CliRunner()


def _combined_output(result) -> str:
    return f"{result.stdout}{getattr(result, 'stderr', '')}"


def _port_args(server):
    return ["--host", "127.0.0.1", "--port", str(server.port)]


def test_help_lists_lifecycle_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("serve", "quit", "reload", "ping", "watch-shutdown", "status"):
        assert command in result.stdout


def test_ping_reports_alive(control_server):
    result = runner.invoke(app, ["ping", *_port_args(control_server), "--payload", "hello"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["alive"] is True
    assert payload["payload"] == b"hello".hex()


def test_ping_uses_metadata_file_when_no_port_given(control_server, root_dir):
    write_daemon_metadata(
        root_dir,
        DaemonMetadata(pid=os.getpid(), port=control_server.port, started_at="2026-02-25T00:00:00Z"),
    )

    result = runner.invoke(app, ["ping", "--root", str(root_dir)])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["alive"] is True


def test_ping_without_running_compositor_fails(root_dir):
    result = runner.invoke(app, ["ping", "--root", str(root_dir)])

    assert result.exit_code == 1
    assert "No running compositor" in _combined_output(result)


def test_reload_dispatches_to_collaborator(control_server):
    reloaded = threading.Event()
    control_server.service.on_reload = reloaded.set

    result = runner.invoke(app, ["reload", *_port_args(control_server)])

    assert result.exit_code == 0
    assert "reload dispatched" in _combined_output(result)
    assert reloaded.wait(timeout=2)


def test_quit_latches_shutdown(control_server, notifier):
    result = runner.invoke(app, ["quit", *_port_args(control_server)])

    assert result.exit_code == 0
    assert notifier.fired is True


def test_watch_shutdown_after_quit_reports_shutdown(control_server, notifier):
    notifier.fire()

    result = runner.invoke(app, ["watch-shutdown", *_port_args(control_server)])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"shutdown": True}


def test_status_reports_absent_root(root_dir):
    result = runner.invoke(app, ["status", "--root", str(root_dir)])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["state"] == "absent"
    assert payload["responsive"] is False


def test_status_reports_responsive_compositor(control_server, root_dir):
    config_path(root_dir).write_text("client:\n  ping_timeout_seconds: 2\n")
    write_daemon_metadata(
        root_dir,
        DaemonMetadata(pid=os.getpid(), port=control_server.port, started_at="2026-02-25T00:00:00Z"),
    )

    result = runner.invoke(app, ["status", "--root", str(root_dir)])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["state"] == "running"
    assert payload["responsive"] is True
    assert payload["endpoint"] == f"127.0.0.1:{control_server.port}"
