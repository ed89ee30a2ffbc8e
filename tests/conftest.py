"""Shared fakes for session tests."""

import logging
import threading

import pytest

from serial_flasher.core.session import FlashSession, SessionListener
from serial_flasher.exceptions import EngineError, TransportError
from serial_flasher.protocol.devices import DeviceHandle

logger = logging.getLogger("serial_flasher.fake")


class FakeTransport:
    """Records open/close and control line calls."""

    def __init__(self, device, fail_open=False):
        self.device = device
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0
        self.control_line = []
        self.is_open = False

    def open(self):
        self.opened += 1
        if self.fail_open:
            raise TransportError(f"Cannot open port {self.device.port}: busy")
        self.is_open = True

    def close(self):
        if self.is_open:
            self.closed += 1
        self.is_open = False

    def set_control_line(self, asserted):
        self.control_line.append(asserted)


class FakeEngine:
    """
    Scriptable engine.

    Set fail_identify / fail_erase / fail_write to an exception to raise it.
    Set gate to a threading.Event to block inside erase/write until released.
    """

    def __init__(self, chip="ESP32-C3 (QFN32) (revision v0.4)"):
        self.chip = chip
        self.fail_identify = None
        self.fail_erase = None
        self.fail_write = None
        self.gate = None
        self.started = threading.Event()
        self.identify_gate = None
        self.identify_started = threading.Event()
        self.identified = 0
        self.erased = 0
        self.writes = []

    def _block(self):
        self.started.set()
        if self.gate is not None:
            assert self.gate.wait(5), "test never released the engine"

    def identify(self):
        self.identified += 1
        self.identify_started.set()
        if self.identify_gate is not None:
            assert self.identify_gate.wait(5), "test never released the handshake"
        if self.fail_identify:
            raise self.fail_identify
        return self.chip

    def erase_all(self):
        self._block()
        self.erased += 1
        if self.fail_erase:
            raise self.fail_erase

    def write_images(self, images, options):
        self._block()
        logger.info(f"Writing {len(images)} images")
        self.writes.append((list(images), options))
        if self.fail_write:
            raise self.fail_write
        for index, image in enumerate(images):
            half = image.size // 2
            options.report_progress(index, half, image.size)
            options.report_progress(index, image.size, image.size)


class CountingSelector:
    """Selector returning a fixed device and counting how often it is asked."""

    def __init__(self, device=None, error=None):
        self.device = device or DeviceHandle(port="/dev/ttyFAKE0", description="CP2102N", vid=0x10C4, pid=0xEA60)
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.device


class RecordingListener(SessionListener):
    def __init__(self):
        self.states = []
        self.progress = []
        self.errors = []

    def on_state_changed(self, state, chip):
        self.states.append((state, chip))

    def on_progress(self, report):
        self.progress.append(report)

    def on_error(self, result):
        self.errors.append(result)


class SessionHarness:
    """A FlashSession wired to fakes, plus handles on every fake."""

    def __init__(self, fail_open=False):
        self.selector = CountingSelector()
        self.engine = FakeEngine()
        self.transports = []
        self.listener = RecordingListener()
        self.fail_open = fail_open
        self.session = FlashSession(
            selector=self.selector,
            transport_factory=self._make_transport,
            engine_factory=lambda transport: self.engine,
            listeners=[self.listener],
        )

    def _make_transport(self, device):
        transport = FakeTransport(device, fail_open=self.fail_open)
        self.transports.append(transport)
        return transport

    @property
    def transport(self):
        return self.transports[-1]


@pytest.fixture
def harness():
    return SessionHarness()


@pytest.fixture
def engine_error():
    return EngineError("Failed to connect to ESP32: No serial data received.")
