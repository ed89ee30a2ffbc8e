"""
Streamlit UI for Serial Flasher.

Single page: pick a port, connect, then reset, erase or program an image
table of (offset, file) rows.

NOTE: This module requires the optional 'ui' extra to be installed:
    pip install -e ".[ui]"
"""

import asyncio
import logging
import sys
from typing import List, Optional

# Guard streamlit import - it's an optional dependency
try:
    import streamlit as st
    from streamlit.runtime.scriptrunner import add_script_run_ctx, get_script_run_ctx
except ImportError as e:
    _missing = "streamlit" if "streamlit" in str(e) else str(e)
    print(
        f"\n[ERROR] Missing required package: {_missing}\n\n"
        f"The Streamlit UI requires extra dependencies.\n"
        f"Install them with:\n\n"
        f"    pip install -e \".[ui]\"\n\n"
        f"Or install streamlit directly:\n\n"
        f"    pip install streamlit\n"
    )
    sys.exit(1)

from serial_flasher.config import load_settings
from serial_flasher.core.images import DEFAULT_IMAGE_OFFSET
from serial_flasher.core.results import OperationResult
from serial_flasher.core.session import FlashSession
from serial_flasher.core.types import ImageRow, ProgressReport, SessionState
from serial_flasher.protocol.devices import DeviceHandle, auto_select_device, list_devices
from serial_flasher.ui.components import render_result, render_session_badge

AUTO_PORT = "Auto-detect"


class _PortChoice:
    """
    Port picked in the sidebar.

    The session calls its selector from a worker thread, where
    st.session_state is not reachable, so the choice lives on a plain object.
    """

    def __init__(self) -> None:
        self.port: Optional[str] = None

    def select(self) -> DeviceHandle:
        devices = list_devices()
        if self.port is None:
            return auto_select_device(devices)
        for device in devices:
            if device.port == self.port:
                return device
        return DeviceHandle(port=self.port)


def _init_session_state() -> None:
    """Initialize session state for persistence."""
    if "port_choice" not in st.session_state:
        st.session_state.port_choice = _PortChoice()
    if "flash_session" not in st.session_state:
        st.session_state.flash_session = FlashSession(
            selector=st.session_state.port_choice.select,
            settings=load_settings(),
        )
    if "image_row_ids" not in st.session_state:
        st.session_state.image_row_ids = [0]
        st.session_state.next_row_id = 1
    if "last_result" not in st.session_state:
        st.session_state.last_result = None
    if "last_title" not in st.session_state:
        st.session_state.last_title = ""


def _run(coro, title: str) -> OperationResult:
    result = asyncio.run(coro)
    st.session_state.last_result = result
    st.session_state.last_title = title
    return result


def _render_sidebar(session: FlashSession) -> None:
    st.sidebar.markdown("## 🔌 Device")

    devices = list_devices()
    options = [AUTO_PORT] + [device.port for device in devices]
    labels = {device.port: str(device) for device in devices}
    choice = st.sidebar.selectbox(
        "Serial port",
        options,
        format_func=lambda port: labels.get(port, port),
        disabled="connect" not in session.allowed_actions(),
    )
    st.session_state.port_choice.port = None if choice == AUTO_PORT else choice
    if session.device is not None and session.state == SessionState.DISCONNECTED:
        st.sidebar.caption(f"Last used: {session.device}")

    debug = st.sidebar.checkbox("Debug logging", value=False)
    logging.getLogger("serial_flasher").setLevel(logging.DEBUG if debug else logging.INFO)


def _render_connection(session: FlashSession) -> None:
    allowed = session.allowed_actions()
    render_session_badge(session.state, session.chip_identity, str(session.device) if session.device else None)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        if st.button("Connect", disabled="connect" not in allowed, use_container_width=True):
            with st.spinner("Connecting..."):
                _run(session.connect(), "Connected")
            st.rerun()
    with col2:
        if st.button("Disconnect", disabled="disconnect" not in allowed, use_container_width=True):
            _run(session.disconnect(), "Disconnected")
            st.rerun()
    with col3:
        if st.button("Reset device", disabled="reset_device" not in allowed, use_container_width=True):
            _run(session.reset_device(), "Reset pulse sent")
            st.rerun()
    with col4:
        if st.button("Erase flash", disabled="erase_all" not in allowed, use_container_width=True):
            with st.spinner("Erasing flash (this may take a while)..."):
                _run(session.erase_all(), "Flash erased")
            st.rerun()


def _render_image_table() -> List[ImageRow]:
    """Render offset/file rows and return them in table order."""
    st.markdown("### 📦 Images")

    rows = []
    for position, row_id in enumerate(list(st.session_state.image_row_ids), start=1):
        col_offset, col_file, col_remove = st.columns([2, 5, 1])
        with col_offset:
            offset = st.text_input(
                f"Offset (row {position})",
                value=DEFAULT_IMAGE_OFFSET if position == 1 else "",
                key=f"offset_{row_id}",
                placeholder="0x10000",
            )
        with col_file:
            upload = st.file_uploader(
                f"Binary (row {position})",
                type=["bin"],
                key=f"file_{row_id}",
            )
        with col_remove:
            st.write("")
            if st.button("✖", key=f"remove_{row_id}", disabled=len(st.session_state.image_row_ids) == 1):
                st.session_state.image_row_ids.remove(row_id)
                st.rerun()
        rows.append(ImageRow(offset, upload.getvalue() if upload is not None else None))

    if st.button("➕ Add row"):
        st.session_state.image_row_ids.append(st.session_state.next_row_id)
        st.session_state.next_row_id += 1
        st.rerun()

    return rows


def _program(session: FlashSession, rows: List[ImageRow]) -> None:
    progress_placeholder = st.empty()
    ctx = get_script_run_ctx()

    def _progress_cb(report: ProgressReport) -> None:
        # Called from the session's worker thread
        add_script_run_ctx(ctx=ctx)
        pct = min(int(report.percent), 100)
        progress_placeholder.progress(pct, text=f"Image {report.file_index + 1}/{len(rows)}: {pct}%")

    _run(session.program_images(rows, progress_cb=_progress_cb), "Flashing completed")
    progress_placeholder.empty()


def main():
    """Streamlit app main."""
    st.set_page_config(
        page_title="Serial Flasher",
        page_icon="⚡",
        layout="centered",
    )

    _init_session_state()
    session: FlashSession = st.session_state.flash_session

    st.title("⚡ Serial Flasher")
    _render_sidebar(session)
    _render_connection(session)

    st.divider()
    rows = _render_image_table()

    if st.button(
        "Program",
        type="primary",
        disabled="program_images" not in session.allowed_actions(),
        use_container_width=True,
    ):
        _program(session, rows)

    result = st.session_state.last_result
    if result is not None:
        st.divider()
        render_result(result, st.session_state.last_title)


if __name__ == "__main__":
    main()
