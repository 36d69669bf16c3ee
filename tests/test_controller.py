from compctl.config.loader import config_path
from compctl.runtime.controller import CompositorRuntime, ReloadStatus


def test_load_initial_reads_control_and_client_sections(root_dir):
    config_path(root_dir).write_text("""
control:
  port: 7300
  shutdown_grace_seconds: 0.25
client:
  ping_timeout_seconds: 3
config:
  gaps: 8
""")
    runtime = CompositorRuntime(root_dir)

    runtime.load_initial()

    assert runtime.generation == 1
    assert runtime.control.port == 7300
    assert runtime.control.shutdown_grace_seconds == 0.25
    assert runtime.client.ping_timeout_seconds == 3
    assert runtime.config.gaps == 8


def test_load_initial_without_file_uses_defaults(root_dir):
    runtime = CompositorRuntime(root_dir)

    runtime.load_initial()

    assert runtime.control.host == "127.0.0.1"
    assert runtime.control.port == 0
    assert runtime.client.ping_timeout_seconds == 10.0


def test_reload_success_swaps_config_and_emits_event(root_dir):
    events = []
    config_path(root_dir).write_text("config:\n  gaps: 4\n")
    runtime = CompositorRuntime(root_dir, on_reload_success=events.append)
    runtime.load_initial()

    config_path(root_dir).write_text("config:\n  gaps: 12\n")
    event = runtime.reload_config()

    assert event.status == ReloadStatus.SUCCESS
    assert event.generation == 2
    assert runtime.config.gaps == 12
    assert events == [event]


def test_reload_failure_keeps_previous_config(root_dir):
    failures = []
    config_path(root_dir).write_text("config:\n  gaps: 4\n")
    runtime = CompositorRuntime(root_dir, on_reload_failure=failures.append)
    runtime.load_initial()

    config_path(root_dir).write_text("config: [broken\n")
    event = runtime.reload_config()

    assert event.status == ReloadStatus.FAILURE
    assert event.generation == 1
    assert runtime.config.gaps == 4
    assert failures == [event]


def test_reload_with_invalid_settings_is_a_failure(root_dir):
    runtime = CompositorRuntime(root_dir)
    runtime.load_initial()

    config_path(root_dir).write_text("control:\n  port: 70000\n")
    event = runtime.reload_config()

    assert event.status == ReloadStatus.FAILURE
    assert runtime.control.port == 0


def test_quit_invokes_stop_hook_once(root_dir):
    stops = []
    runtime = CompositorRuntime(root_dir, on_stop=lambda: stops.append(True))

    runtime.quit()
    runtime.quit()

    assert runtime.stopped is True
    assert stops == [True]
