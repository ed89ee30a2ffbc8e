"""
Flashing session state machine.

FlashSession owns the selected device, the open transport and the engine
bound to it, and decides which actions are legal in which state:

    DISCONNECTED --connect--> CONNECTED --erase_all/program_images--> BUSY
         ^                        |  ^                                  |
         |                        |  +----------------------------------+
         +-------disconnect-------+  (also from BUSY)

Actions are coroutines. Blocking engine and transport calls run in a
worker thread, so progress callbacks arrive on that thread. connect and
reset_device do not enter BUSY; while one of them runs, only disconnect is
accepted.

Out-of-state calls raise IllegalStateError before any side effect. All
other failures come back as an OperationResult and are announced to
listeners.
"""

import asyncio
import logging
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from serial_flasher.config import FlasherSettings
from serial_flasher.exceptions import IllegalStateError
from serial_flasher.protocol.devices import DeviceHandle, DeviceSelector
from serial_flasher.protocol.engine import FLASH_SIZE_KEEP, FlashingEngine, FlashOptions, HashFunction

from .images import md5_hex, pad_image
from .parsing import format_offset
from .results import ErrorKind, OperationResult
from .types import ImageRow, ProgressReport, SessionState
from .validation import find_overlaps, validate_image_rows

logger = logging.getLogger(__name__)

TransportFactory = Callable[[DeviceHandle], object]
EngineFactory = Callable[[object], FlashingEngine]


# Capture handler of the action running in the current context. Tasks and
# asyncio.to_thread workers each see their own copy.
_active_capture: ContextVar[Optional["_ListLogHandler"]] = ContextVar("serial_flasher_capture", default=None)

# logger name -> [active captures, level before the first one]
_level_overrides: Dict[str, List[int]] = {}
_level_lock = threading.Lock()


class _ListLogHandler(logging.Handler):
    """Capture log records of one action into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        if _active_capture.get() is not self:
            return
        self.records.append(self.format(record))


def _raise_level(target_logger: logging.Logger) -> None:
    with _level_lock:
        entry = _level_overrides.get(target_logger.name)
        if entry is not None:
            entry[0] += 1
            return
        previous_level = target_logger.level
        _level_overrides[target_logger.name] = [1, previous_level]
        if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
            target_logger.setLevel(logging.INFO)


def _restore_level(target_logger: logging.Logger) -> None:
    with _level_lock:
        entry = _level_overrides[target_logger.name]
        entry[0] -= 1
        if entry[0] == 0:
            del _level_overrides[target_logger.name]
            target_logger.setLevel(entry[1])


@contextmanager
def _capture_logs(logger_name: str = "serial_flasher"):
    """
    Capture logs for a session action into a list.

    Actions may overlap (disconnect while BUSY): each capture keeps only the
    records logged from its own context, and the logger level is restored
    once the last capture ends.
    """
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    _raise_level(target_logger)
    target_logger.addHandler(handler)
    token = _active_capture.set(handler)
    try:
        yield handler.records
    finally:
        _active_capture.reset(token)
        target_logger.removeHandler(handler)
        _restore_level(target_logger)



class SessionListener:
    """
    Receives session notifications; UI adapters override what they need.

    on_progress may be called from a worker thread.
    """

    def on_state_changed(self, state: SessionState, chip: Optional[str]) -> None:
        pass

    def on_progress(self, report: ProgressReport) -> None:
        pass

    def on_error(self, result: OperationResult) -> None:
        pass


class _Detached(Exception):
    """The session was disconnected while an action was awaiting."""


def _default_transport_factory(settings: FlasherSettings) -> TransportFactory:
    def create(device: DeviceHandle):
        from serial_flasher.protocol.transport import SerialTransport
        return SerialTransport(device.port, baudrate=settings.baud_rate, timeout=settings.serial_timeout)
    return create


def _default_engine_factory(settings: FlasherSettings) -> EngineFactory:
    def create(transport):
        from serial_flasher.protocol.esptool_engine import EsptoolEngine
        return EsptoolEngine(transport, settings)
    return create


class FlashSession:
    """
    One flashing session per UI instance.

    Attributes:
        state: Current SessionState
        device: Device picked by the user; kept across failed connects
        transport: Open transport, None when disconnected
        engine: Engine bound to transport, None when disconnected
        chip_identity: Chip name from the handshake, None when disconnected
    """

    def __init__(
        self,
        selector: DeviceSelector,
        settings: Optional[FlasherSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
        engine_factory: Optional[EngineFactory] = None,
        hash_function: HashFunction = md5_hex,
        listeners: Iterable[SessionListener] = (),
    ):
        self.settings = settings or FlasherSettings()
        self._selector = selector
        self._transport_factory = transport_factory or _default_transport_factory(self.settings)
        self._engine_factory = engine_factory or _default_engine_factory(self.settings)
        self._hash_function = hash_function
        self._listeners: List[SessionListener] = list(listeners)

        self.state = SessionState.DISCONNECTED
        self.device: Optional[DeviceHandle] = None
        self.transport = None
        self.engine: Optional[FlashingEngine] = None
        self.chip_identity: Optional[str] = None

        # Bumped by disconnect(); actions started under an older epoch
        # settle without touching session state.
        self._epoch = 0

        # Action running without a BUSY state ("connect", "reset_device");
        # only disconnect() is accepted meanwhile.
        self._in_flight: Optional[str] = None
        # Transport being opened by connect(), not yet part of the session
        self._pending_transport = None

    # ---------- listeners ----------
    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        self._listeners.remove(listener)

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        logger.debug(f"Session {state.value} (chip={self.chip_identity})")
        for listener in self._listeners:
            listener.on_state_changed(state, self.chip_identity)

    def _notify_error(self, result: OperationResult) -> None:
        for listener in self._listeners:
            listener.on_error(result)

    def _notify_progress(self, report: ProgressReport) -> None:
        for listener in self._listeners:
            listener.on_progress(report)

    # ---------- queries ----------
    @property
    def is_connected(self) -> bool:
        return self.state != SessionState.DISCONNECTED and self.chip_identity is not None

    def allowed_actions(self) -> Tuple[str, ...]:
        """Names of actions legal right now; UIs use this to enable buttons."""
        if self._in_flight is not None:
            return ("disconnect",)
        if self.state == SessionState.DISCONNECTED:
            return ("connect",)
        if self.state == SessionState.CONNECTED:
            return ("reset_device", "erase_all", "program_images", "disconnect")
        return ("disconnect",)

    def _require(self, action: str, *states: SessionState) -> None:
        if self._in_flight is not None:
            if action == "disconnect":
                return
            raise IllegalStateError(
                action,
                self.state.value,
                f"'{action}' is not allowed while {self._in_flight} is running",
            )
        if self.state not in states:
            raise IllegalStateError(action, self.state.value)

    def _finish_in_flight(self, epoch: int) -> None:
        # A disconnect() in between already reset both
        if epoch == self._epoch:
            self._in_flight = None
            self._pending_transport = None

    def _check_epoch(self, epoch: int) -> None:
        if epoch != self._epoch:
            raise _Detached()

    def _detached_result(self, operation: str, logs: List[str]) -> OperationResult:
        logger.debug(f"{operation} settled after disconnect; outcome discarded")
        result = OperationResult.failure(
            operation=operation,
            error="Session was disconnected before the operation finished",
            kind=ErrorKind.DISCONNECTED,
        )
        result.logs = logs
        return result

    def _clear_connection(self):
        """Drop every connection-bound field; returns the transport to close."""
        # At most one of the two is set
        transport = self.transport or self._pending_transport
        self.transport = None
        self.engine = None
        self.chip_identity = None
        self._pending_transport = None
        return transport

    @staticmethod
    def _close_transport(transport) -> None:
        if transport is None:
            return
        try:
            transport.close()
        except Exception as e:
            logger.warning(f"Error while closing transport: {e}")

    # ---------- actions ----------
    async def connect(self) -> OperationResult:
        """
        Select a device (once), open it and identify the chip.

        The session stays DISCONNECTED until the handshake succeeds; then
        transport, engine and chip are set together and the session becomes
        CONNECTED. Meanwhile only disconnect() is accepted. On failure the
        transport is closed, but the selected device is kept so a retry does
        not prompt again.

        Raises:
            IllegalStateError: If not DISCONNECTED, or a connect is running
        """
        self._require("connect", SessionState.DISCONNECTED)
        epoch = self._epoch
        self._in_flight = "connect"

        with _capture_logs() as logs:
            transport = None
            try:
                if self.device is None:
                    device = await asyncio.to_thread(self._selector)
                    self._check_epoch(epoch)
                    self.device = device
                    logger.info(f"Selected {device}")

                transport = self._transport_factory(self.device)
                self._pending_transport = transport
                await asyncio.to_thread(transport.open)
                self._check_epoch(epoch)

                engine = self._engine_factory(transport)
                chip = await asyncio.to_thread(engine.identify)
                self._check_epoch(epoch)
            except _Detached:
                self._close_transport(transport)
                return self._detached_result("connect", logs)
            except Exception as e:
                self._close_transport(transport)
                if epoch != self._epoch:
                    return self._detached_result("connect", logs)
                logger.error(f"connect failed: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
                result = OperationResult.failure(
                    operation="connect",
                    error=str(e) or type(e).__name__,
                    kind=ErrorKind.CONNECTION,
                )
                result.metadata["device"] = str(self.device) if self.device else ""
                result.logs = logs
                self._notify_error(result)
                return result
            finally:
                self._finish_in_flight(epoch)

            self.transport = transport
            self.engine = engine
            self.chip_identity = chip
            logger.info(f"Connected to device: {chip}")
            self._set_state(SessionState.CONNECTED)

            result = OperationResult.success(operation="connect", chip=chip)
            result.metadata["device"] = str(self.device)
            result.logs = logs
            return result

    async def reset_device(self) -> OperationResult:
        """
        Pulse the reset line: assert, hold, release. No handshake follows.

        The session stays CONNECTED during the pulse, but no other action
        except disconnect() is accepted until it is done.

        Raises:
            IllegalStateError: If not CONNECTED, or another action is running
        """
        self._require("reset_device", SessionState.CONNECTED)
        transport = self.transport
        if transport is None:
            return OperationResult.success(operation="reset_device", chip=self.chip_identity or "")

        epoch = self._epoch
        self._in_flight = "reset_device"
        with _capture_logs() as logs:
            try:
                await asyncio.to_thread(self._pulse_reset, transport)
            except Exception as e:
                if epoch != self._epoch:
                    return self._detached_result("reset_device", logs)
                logger.error(f"reset_device failed: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
                result = OperationResult.failure(
                    operation="reset_device",
                    error=str(e),
                    kind=ErrorKind.OPERATION,
                    chip=self.chip_identity or "",
                )
                result.logs = logs
                self._notify_error(result)
                return result
            finally:
                self._finish_in_flight(epoch)

            if epoch != self._epoch:
                return self._detached_result("reset_device", logs)
            result = OperationResult.success(operation="reset_device", chip=self.chip_identity or "")
            result.logs = logs
            return result

    def _pulse_reset(self, transport) -> None:
        transport.set_control_line(True)
        time.sleep(self.settings.reset_pulse_seconds)
        transport.set_control_line(False)
        logger.info("Reset pulse sent")

    async def erase_all(self) -> OperationResult:
        """
        Erase the whole flash. Returns to CONNECTED whatever the outcome.

        Raises:
            IllegalStateError: If not CONNECTED
        """
        self._require("erase_all", SessionState.CONNECTED)
        return await self._run_busy("erase_all", self.engine.erase_all)

    async def program_images(
        self,
        rows: Iterable[Union[ImageRow, Tuple]],
        progress_cb: Optional[Callable[[ProgressReport], None]] = None,
    ) -> OperationResult:
        """
        Validate the image table and write it to flash.

        A validation failure is returned without changing state or
        touching the device. Otherwise the session is BUSY while writing
        and returns to CONNECTED on success or failure.

        On success result.hashes maps each offset to the digest the engine
        verified, i.e. of the image padded to a whole flash word.

        Args:
            rows: (offset_string, data) pairs, one per table row
            progress_cb: Called with a ProgressReport after each block

        Raises:
            IllegalStateError: If not CONNECTED
        """
        self._require("program_images", SessionState.CONNECTED)

        validation = validate_image_rows(rows)
        if not validation.ok:
            logger.warning(validation.error)
            result = OperationResult.failure(
                operation="program_images",
                error=validation.error,
                kind=ErrorKind.VALIDATION,
                chip=self.chip_identity or "",
            )
            result.metadata["row"] = validation.row
            self._notify_error(result)
            return result

        images = validation.images
        engine = self.engine
        epoch = self._epoch

        def report_progress(file_index: int, written: int, total: int) -> None:
            if epoch != self._epoch:
                return
            report = ProgressReport(file_index, written, total)
            if progress_cb:
                progress_cb(report)
            self._notify_progress(report)

        options = FlashOptions(
            flash_size=FLASH_SIZE_KEEP,
            erase_all=False,
            compress=True,
            report_progress=report_progress,
            calculate_hash=self._hash_function,
        )

        result = await self._run_busy("program_images", lambda: engine.write_images(images, options))
        if result.ok:
            result.bytes_len = sum(image.size for image in images)
            for image in images:
                result.hashes[format_offset(image.offset)] = self._hash_function(pad_image(image.data))
            for first, second in find_overlaps(images):
                result.add_warning(
                    f"Image at {format_offset(second.offset)} overlaps image at "
                    f"{format_offset(first.offset)}"
                )
        result.metadata["images"] = len(images)
        return result

    async def _run_busy(self, operation: str, work: Callable[[], None]) -> OperationResult:
        epoch = self._epoch
        self._set_state(SessionState.BUSY)

        with _capture_logs() as logs:
            try:
                await asyncio.to_thread(work)
            except Exception as e:
                if epoch != self._epoch:
                    return self._detached_result(operation, logs)
                logger.error(f"{operation} failed: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
                self._set_state(SessionState.CONNECTED)
                result = OperationResult.failure(
                    operation=operation,
                    error=str(e) or type(e).__name__,
                    kind=ErrorKind.OPERATION,
                    chip=self.chip_identity or "",
                )
                result.logs = logs
                self._notify_error(result)
                return result

            if epoch != self._epoch:
                return self._detached_result(operation, logs)
            self._set_state(SessionState.CONNECTED)
            result = OperationResult.success(operation=operation, chip=self.chip_identity or "")
            result.logs = logs
            return result

    async def disconnect(self) -> OperationResult:
        """
        Close the transport and forget the device and chip.

        Legal while BUSY and while a connect or reset is running: the running
        action is not cancelled; it fails against the closed port and its
        outcome is discarded.

        Raises:
            IllegalStateError: If DISCONNECTED with nothing running
        """
        self._require("disconnect", SessionState.CONNECTED, SessionState.BUSY)
        was_busy = self.state == SessionState.BUSY or self._in_flight is not None
        self._epoch += 1
        self._in_flight = None

        with _capture_logs() as logs:
            chip = self.chip_identity or ""
            transport = self._clear_connection()
            self.device = None
            if self.state != SessionState.DISCONNECTED:
                self._set_state(SessionState.DISCONNECTED)

            await asyncio.to_thread(self._close_transport, transport)
            if was_busy:
                logger.info("Disconnected while an operation was running")
            logger.info("Disconnected")

            result = OperationResult.success(operation="disconnect", chip=chip)
            result.logs = logs
            return result
