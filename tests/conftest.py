"""
Pytest configuration and fixtures
"""
import pytest
import os
import sys
import tempfile
import shutil
from unittest.mock import Mock

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from fieldcapture.config import CaptureSettings, TimingSettings
from fieldcapture.device import DeviceCapability, DeviceError, ItemInfo
from fieldcapture.session_manager import SessionManager


class FakeItem:
    """Folder (children is a list) or file (children is None) on the fake card"""

    def __init__(self, name, size=0, children=None, parent=None):
        self.name = name
        self.size = size
        self.children = children
        self.parent = parent

    def __repr__(self):
        return f"FakeItem({self.name!r})"


class FakeDevice(DeviceCapability):
    """In-memory camera with failure injection switches"""

    backend_name = "fake"

    def __init__(self):
        card = FakeItem("CARD1", children=[])
        dcim = FakeItem("DCIM", children=[], parent=card)
        card.children.append(dcim)
        self.folder = FakeItem("100CANON", children=[], parent=dcim)
        dcim.children.append(self.folder)
        self.volumes = [card]

        self.open_failures = 0
        self.open_calls = 0
        self.closed = []
        self.fail_set_property = False
        self.fail_handler = False
        self.fail_captures = False
        self.fail_enumerate = False
        self.fail_delete = False
        self.fail_format = False
        self.download_failures = {}

        self.properties = {}
        self.handler = None
        self.pending_events = 0
        self.poll_count = 0
        self.capture_count = 0
        self.commands = []
        self.downloads = []
        self.deleted = []
        self.formatted = 0
        self.released = []

    def add_file(self, name, size=10, folder=None):
        folder = folder or self.folder
        item = FakeItem(name, size=size, parent=folder)
        folder.children.append(item)
        return item

    def file_names(self):
        return [item.name for item in self.folder.children]

    def open_session(self):
        self.open_calls += 1
        if self.open_calls <= self.open_failures:
            raise DeviceError("No cameras found")
        return "session-handle"

    def close_session(self, handle):
        self.closed.append(handle)

    def send_command(self, handle, command, param=0):
        self.commands.append(command)
        if self.fail_captures:
            raise DeviceError("Device busy", code=0x81)
        self.capture_count += 1
        self.add_file(f"IMG_{self.capture_count:04d}.JPG", size=100 + self.capture_count)
        self.pending_events += 1

    def set_property(self, handle, property_id, value):
        if self.fail_set_property:
            raise DeviceError("Property not available")
        self.properties[property_id] = value

    def enumerate_volumes(self, handle):
        if self.fail_enumerate:
            raise DeviceError("Cannot enumerate")
        return list(self.volumes)

    def enumerate_children(self, item_ref):
        if self.fail_enumerate:
            raise DeviceError("Cannot enumerate")
        return list(item_ref.children)

    def get_item_info(self, item_ref):
        return ItemInfo(item_ref.name, item_ref.size, item_ref.children is not None)

    def download(self, item_ref, size, destination):
        self.downloads.append(item_ref.name)
        remaining = self.download_failures.get(item_ref.name, 0)
        if remaining:
            self.download_failures[item_ref.name] = remaining - 1
            raise DeviceError("Download interrupted")
        with open(destination, 'xb') as f:
            f.write(b'x' * size)

    def complete_download(self, item_ref):
        pass

    def delete_item(self, item_ref):
        if self.fail_delete:
            raise DeviceError("Card is write protected")
        item_ref.parent.children.remove(item_ref)
        self.deleted.append(item_ref.name)

    def format_volume(self, volume_ref):
        if self.fail_format:
            raise DeviceError("Format failed")
        self.formatted += 1
        self.folder.children.clear()

    def release(self, ref):
        self.released.append(ref)

    def poll_events(self):
        self.poll_count += 1
        pending, self.pending_events = self.pending_events, 0
        if self.handler:
            for _ in range(pending):
                self.handler()

    def set_item_created_handler(self, handle, callback):
        self.handler = callback


FAST_TIMING = TimingSettings(
    session_settle_seconds=0,
    event_poll_interval_seconds=0.01,
    event_poll_error_backoff_seconds=0.01,
    pre_capture_event_polls=1,
    pre_capture_event_poll_interval_seconds=0,
    capture_settle_seconds=0,
    frame_ready_margin_seconds=0,
    post_format_settle_seconds=0,
    keep_alive_wait_seconds=0,
    keep_alive_margin_minutes=5,
    tick_period_seconds=60,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp(prefix="fieldcapture_test_")
    yield temp_path
    # Cleanup after test
    if os.path.exists(temp_path):
        shutil.rmtree(temp_path)


@pytest.fixture
def temp_config(temp_dir):
    """Path for a temporary config file"""
    config_path = os.path.join(temp_dir, "config.json")
    return config_path


@pytest.fixture
def settings(temp_dir):
    """Validated settings with every settle delay set to zero"""
    return CaptureSettings(
        site_name="TestSite",
        base_directory=temp_dir,
        start_hour=6,
        end_hour=18,
        sequence_interval_minutes=60,
        frames_per_sequence=3,
        frame_delay_seconds=0,
        backend="fake",
        timing=FAST_TIMING,
    )


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def session(fake_device, settings, monkeypatch):
    """Ready SessionManager without the background event pump"""
    monkeypatch.setattr(SessionManager, '_start_event_pump', lambda self: None)
    manager = SessionManager(fake_device, settings, interference_hook=Mock())
    manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def reconciliation(session, settings):
    from fieldcapture.reconciliation import FileReconciliationEngine
    engine = FileReconciliationEngine(session, settings.capture_directory)
    yield engine
    engine.shutdown(wait=True)


# Mark slow tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "requires_camera: marks tests that need a physical camera"
    )
