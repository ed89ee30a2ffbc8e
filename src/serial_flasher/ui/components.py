"""
Reusable Streamlit UI components for Serial Flasher.

Provides consistent UI elements for the flashing page:
- Session state badge
- Warning/error display with collapsible sections
- Result status blocks and raw logs
"""

from typing import Any, Dict, List, Optional

import streamlit as st

from serial_flasher.core.messages import MessageLevel, WarningItem, result_to_warnings
from serial_flasher.core.results import OperationResult
from serial_flasher.core.types import SessionState


# =============================================================================
# Session Badge
# =============================================================================

_STATE_STYLE = {
    SessionState.DISCONNECTED: ("⚪", "gray"),
    SessionState.CONNECTED: ("🟢", "green"),
    SessionState.BUSY: ("🟠", "orange"),
}


def render_session_badge(state: SessionState, chip: Optional[str], device: Optional[str] = None) -> None:
    """Render the current session state and the connected chip, if any."""
    icon, color = _STATE_STYLE[state]
    st.markdown(f"{icon} **Status:** :{color}[{state.label}]")
    if chip:
        st.markdown(f"Connected to device: **{chip}**")
    if device:
        st.caption(f"Port: {device}")


# =============================================================================
# Warning Display Components
# =============================================================================

def render_warning_list(
    warnings: List[WarningItem],
    collapsed_default: bool = True,
    title: str = "⚠️ Warnings",
) -> None:
    """
    Render a list of warnings in a collapsible expander.

    Args:
        warnings: List of WarningItem objects to display
        collapsed_default: Whether expander is collapsed by default
        title: Title for the expander section
    """
    if not warnings:
        return

    error_count = sum(1 for w in warnings if w.level == MessageLevel.ERROR)
    warn_count = sum(1 for w in warnings if w.level == MessageLevel.WARN)

    counts = []
    if error_count:
        counts.append(f"❌ {error_count} error{'s' if error_count > 1 else ''}")
    if warn_count:
        counts.append(f"⚠️ {warn_count} warning{'s' if warn_count > 1 else ''}")

    display_title = f"{title} ({', '.join(counts)})" if counts else title

    # Force open if there are errors
    expanded = not collapsed_default or error_count > 0

    with st.expander(display_title, expanded=expanded):
        for warning in warnings:
            _render_single_warning(warning)


def _render_single_warning(warning: WarningItem) -> None:
    if warning.level == MessageLevel.ERROR:
        container = st.error
    elif warning.level == MessageLevel.WARN:
        container = st.warning
    else:
        container = st.info

    container(f"**{warning.title}**")
    if warning.detail or warning.remediation:
        with st.expander(f"Details ({warning.code.value})", expanded=False):
            if warning.detail:
                st.markdown(warning.detail)
            if warning.remediation:
                st.markdown(f"**Suggested action:** {warning.remediation}")


# =============================================================================
# Status Block Components
# =============================================================================

def render_status_success(
    title: str,
    message: str = "",
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Render a success status block."""
    st.success(f"✅ **{title}**")
    if message:
        st.markdown(message)
    if details:
        with st.expander("Details", expanded=False):
            st.json(details)


def render_result(result: OperationResult, success_title: str) -> None:
    """Render an OperationResult as a status block plus warnings and logs."""
    warnings = result_to_warnings(result)
    if result.ok:
        render_status_success(success_title, details=result.to_dict() if result.hashes else None)
        render_warning_list(warnings)
    else:
        st.error(f"❌ **{result.message}**")
        render_warning_list(warnings, collapsed_default=False, title="Error Details")
    render_raw_logs(result.logs)


# =============================================================================
# Raw Logs Component
# =============================================================================

def render_raw_logs(
    logs: List[str],
    title: str = "📜 Raw Logs",
    collapsed_default: bool = True,
) -> None:
    """Render raw log output in a collapsible section."""
    if not logs:
        return

    with st.expander(title, expanded=not collapsed_default):
        st.code("\n".join(logs), language="text")
