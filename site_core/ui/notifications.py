# =============================================================================
# site_core/ui/notifications.py
# Transient User Notifications
# =============================================================================
"""
Single notification surface for every async outcome.

All errors and successes reach the user through ``Notifier.notify`` as a
short-lived toast (title, description, variant). Nothing here opens a modal.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Protocol
import logging

import streamlit as st

logger = logging.getLogger(__name__)

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    """A single toast."""
    title: str
    description: str = ""
    variant: str = DEFAULT
    created_at: datetime = field(default_factory=datetime.now, compare=False)


class Notifier(Protocol):
    def notify(self, title: str, description: str = "", variant: str = DEFAULT) -> None:
        ...


class StreamlitNotifier:
    """Shows notifications with ``st.toast``."""

    ICONS = {
        DEFAULT: "✅",
        DESTRUCTIVE: "⚠️",
    }

    def notify(self, title: str, description: str = "", variant: str = DEFAULT) -> None:
        body = f"**{title}**"
        if description:
            body += f"\n\n{description}"
        try:
            st.toast(body, icon=self.ICONS.get(variant, self.ICONS[DEFAULT]))
        except Exception as e:
            # Outside a script run there is no toast area
            logger.warning(f"Toast not shown ({e}): {title} - {description}")


class LoggingNotifier:
    """Headless notifier that writes notifications to the log and keeps a history."""

    def __init__(self, history_size: int = 50):
        self.history_size = history_size
        self.history: List[Notification] = []

    def notify(self, title: str, description: str = "", variant: str = DEFAULT) -> None:
        note = Notification(title=title, description=description, variant=variant)
        self.history.append(note)
        del self.history[:-self.history_size]

        if variant == DESTRUCTIVE:
            logger.warning(f"{title}: {description}")
        else:
            logger.info(f"{title}: {description}")
