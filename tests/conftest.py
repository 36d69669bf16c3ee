import pytest
import sys
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from compctl.runtime import ControlServer, LifecycleClient, LifecycleControlService, ShutdownNotifier


@pytest.fixture
def root_dir(tmp_path):
    """
    Returns a temporary directory to act as the compositor root for tests.
    Holds compctl.yaml and the .compctl/ endpoint metadata.
    """
    return tmp_path


@pytest.fixture
def notifier():
    return ShutdownNotifier()


@pytest.fixture
def control_server(notifier):
    """
    Starts a ControlServer on an ephemeral port in a background thread.
    Tests may replace `server.service.on_quit` / `on_reload` before calling.
    """
    service = LifecycleControlService(notifier=notifier)
    server = ControlServer(service, host="127.0.0.1", port=0, shutdown_grace_seconds=0.5)
    thread = server.start_in_thread()
    yield server
    server.shutdown()
    thread.join(timeout=2)


@pytest.fixture
def client(control_server):
    return LifecycleClient("127.0.0.1", control_server.port, timeout_seconds=2.0)
