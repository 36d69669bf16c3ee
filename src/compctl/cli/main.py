import os
import time
import typer
from pathlib import Path
from typing import Optional, Tuple

from compctl.cli.formatter import OutputFormatter, configure_logging
from compctl.config.loader import ConfigLoadError, config_path, load_config
from compctl.core.models import ClientSettings
from compctl.runtime import (
    CompositorRuntime,
    ControlServer,
    LifecycleClient,
    LifecycleControlService,
    ShutdownNotifier,
)
from compctl.runtime.daemon import (
    DaemonMetadata,
    DaemonState,
    clear_daemon_metadata,
    probe_daemon_state,
    recover_stale_daemon_metadata,
    utc_now_iso,
    write_daemon_metadata,
)
from compctl.utils.errors import ControlError, PingMismatchError

app = typer.Typer(name="compctl", help="Compositor lifecycle control", rich_markup_mode=None)

RootOption = typer.Option(Path("."), "--root", "-r", help="Directory holding compctl.yaml and .compctl/ metadata.")
HostOption = typer.Option(None, "--host", help="Control endpoint host; defaults to the metadata file.")
PortOption = typer.Option(None, "--port", help="Control endpoint port; defaults to the metadata file.")


def _resolve_endpoint(root: Path, host: Optional[str], port: Optional[int]) -> Tuple[str, int]:
    if port is not None:
        return host or "127.0.0.1", port

    probe = probe_daemon_state(root)
    if probe.state != DaemonState.RUNNING or probe.metadata is None:
        OutputFormatter.log(f"No running compositor found under {root}: {probe.reason}", severity="error")
        raise typer.Exit(code=1)

    return host or probe.metadata.host, probe.metadata.port


def _client_settings(root: Path, **overrides) -> ClientSettings:
    try:
        config_data = load_config(config_path(root))
    except ConfigLoadError as e:
        OutputFormatter.log(f"Ignoring unreadable config: {e}", severity="warning")
        config_data = {}
    return ClientSettings(**{**(config_data.get("client") or {}), **overrides})


def _client(root: Path, host: Optional[str], port: Optional[int], settings: ClientSettings) -> LifecycleClient:
    resolved_host, resolved_port = _resolve_endpoint(root, host, port)
    return LifecycleClient(resolved_host, resolved_port, timeout_seconds=settings.connect_timeout_seconds)


@app.command()
def serve(
    root: Path = RootOption,
    host: Optional[str] = typer.Option(None, "--host", help="Bind host; overrides compctl.yaml."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port; 0 picks a free port."),
):
    """Run a headless compositor that exposes the lifecycle control service."""
    effective_root = root.expanduser().resolve()
    server: Optional[ControlServer] = None

    def _stop() -> None:
        if server is not None:
            server.shutdown()

    runtime = CompositorRuntime(effective_root, on_stop=_stop)
    try:
        runtime.load_initial()
    except (ConfigLoadError, ValueError) as e:
        OutputFormatter.log(f"Could not load configuration: {e}", severity="critical")
        raise typer.Exit(code=1)

    configure_logging(runtime.control.log_level)

    probe = probe_daemon_state(effective_root)
    if probe.state == DaemonState.RUNNING:
        OutputFormatter.log(
            f"A compositor is already running for this root (pid={probe.metadata.pid}).",
            severity="error",
        )
        raise typer.Exit(code=1)
    if probe.state == DaemonState.STALE and recover_stale_daemon_metadata(effective_root):
        OutputFormatter.log("Recovered stale control endpoint metadata.", severity="warning")

    service = LifecycleControlService(
        notifier=ShutdownNotifier(),
        on_quit=runtime.quit,
        on_reload=runtime.reload_config,
    )
    server = ControlServer(
        service,
        host=host or runtime.control.host,
        port=runtime.control.port if port is None else port,
        shutdown_grace_seconds=runtime.control.shutdown_grace_seconds,
    )

    def _announce() -> None:
        metadata = DaemonMetadata(pid=os.getpid(), host=server.host, port=server.port, started_at=utc_now_iso())
        write_daemon_metadata(effective_root, metadata)
        OutputFormatter.log(
            f"Compositor running (pid={metadata.pid}, control={metadata.host}:{metadata.port}).",
            severity="success",
        )

    try:
        server.serve_forever(on_listening=_announce, install_signal_handlers=True)
    finally:
        clear_daemon_metadata(effective_root, expected_pid=os.getpid())
        OutputFormatter.log("Compositor stopped.", severity="info")


@app.command("quit")
def quit_command(root: Path = RootOption, host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Ask the compositor to shut down."""
    client = _client(root, host, port, _client_settings(root))
    try:
        client.quit()
    except ControlError as e:
        OutputFormatter.log(str(e), severity="error")
        raise typer.Exit(code=1)
    OutputFormatter.log("Quit requested.", severity="success")


@app.command()
def reload(root: Path = RootOption, host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Ask the compositor to reload its configuration."""
    client = _client(root, host, port, _client_settings(root))
    try:
        client.reload_config()
    except ControlError as e:
        OutputFormatter.log(str(e), severity="error")
        raise typer.Exit(code=1)
    OutputFormatter.log("Config reload dispatched.", severity="success")


@app.command()
def ping(
    root: Path = RootOption,
    host: Optional[str] = HostOption,
    port: Optional[int] = PortOption,
    payload: Optional[str] = typer.Option(None, "--payload", help="UTF-8 text to echo; random bytes when omitted."),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0.001, help="Seconds to wait before declaring the compositor unresponsive."),
):
    """Check that the compositor answers, not just that its socket is open."""
    overrides = {} if timeout is None else {"ping_timeout_seconds": timeout}
    settings = _client_settings(root, **overrides)
    client = _client(root, host, port, settings)
    sent = payload.encode("utf-8") if payload is not None else os.urandom(settings.ping_payload_size)

    started = time.monotonic()
    try:
        response = client.ping(sent, timeout_seconds=settings.ping_timeout_seconds)
        if response.payload != sent:
            raise PingMismatchError(sent, response.payload)
    except ControlError as e:
        OutputFormatter.log(f"Compositor is not responsive: {e}", severity="error")
        raise typer.Exit(code=1)

    elapsed_ms = (time.monotonic() - started) * 1000.0
    OutputFormatter.print_data({"alive": True, "payload": sent, "round_trip_ms": round(elapsed_ms, 3)})


@app.command("watch-shutdown")
def watch_shutdown(root: Path = RootOption, host: Optional[str] = HostOption, port: Optional[int] = PortOption):
    """Block until the compositor announces shutdown."""
    client = _client(root, host, port, _client_settings(root))
    notified = False
    try:
        for _ in client.shutdown_watch():
            notified = True
    except ControlError as e:
        OutputFormatter.log(str(e), severity="error")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        OutputFormatter.log("Stopped watching.", severity="info")
        raise typer.Exit(code=130)

    if notified:
        OutputFormatter.print_data({"shutdown": True})
    else:
        OutputFormatter.log("Stream closed without a shutdown notification.", severity="warning")
        raise typer.Exit(code=1)


@app.command()
def status(root: Path = RootOption):
    """Report whether a compositor is running for this root and whether it answers."""
    probe = probe_daemon_state(root)
    payload = {"state": probe.state.value, "reason": probe.reason, "responsive": False}

    if probe.state == DaemonState.RUNNING and probe.metadata is not None:
        payload["pid"] = probe.metadata.pid
        payload["endpoint"] = f"{probe.metadata.host}:{probe.metadata.port}"
        client = LifecycleClient(probe.metadata.host, probe.metadata.port)
        payload["responsive"] = client.check_alive(timeout_seconds=_client_settings(root).ping_timeout_seconds)

    OutputFormatter.print_data(payload)
    if probe.state != DaemonState.RUNNING:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
