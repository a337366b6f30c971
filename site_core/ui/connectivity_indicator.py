# =============================================================================
# site_core/ui/connectivity_indicator.py
# Persistent Online/Offline Badge
# =============================================================================

from __future__ import annotations
from typing import Optional

import streamlit as st

from site_core.offline.connection_manager import ConnectionManager


def render_connectivity_indicator(manager: ConnectionManager, pending_drafts: Optional[int] = None) -> None:
    """
    Render the sidebar connection badge.

    Being offline is an ongoing state, so it is shown here for as long as it
    lasts instead of as a toast.
    """
    status = manager.get_status_display()

    with st.sidebar:
        if status["is_online"]:
            st.markdown("🟢 **Online**")
        else:
            st.markdown("🔴 **Offline** · showing cached data")
            if status["last_online"]:
                st.caption(f"Last online: {status['last_online']}")

        if pending_drafts:
            st.caption(f"{pending_drafts} form draft(s) waiting to be submitted")
