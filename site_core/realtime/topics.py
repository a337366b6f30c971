# =============================================================================
# site_core/realtime/topics.py
# Channel Topics and Reconciliation Rules for Project Views
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Optional

from site_core.realtime.channels import ChannelTopic, TableBinding
from site_core.realtime.events import ChangeAction, ChangeEvent
from site_core.realtime.reconciler import ReconciliationRule
from site_core.ui.notifications import DESTRUCTIVE, Notifier


TASK_PATCHABLE = frozenset({
    "title", "description", "status", "priority", "progress",
    "due_date", "assignee_id", "updated_at",
})
MEMBER_PATCHABLE = frozenset({"role", "permissions", "status", "updated_at"})
DOCUMENT_PATCHABLE = frozenset({"file_name", "description", "tags", "updated_at"})


def _project_filter(project_id: str) -> str:
    return f"project_id=eq.{project_id}"


# =============================================================================
# PROJECT MEMBERS + AUDIT LOG
# =============================================================================

def project_topic(project_id: str) -> ChannelTopic:
    """Members and audit log of one project, multiplexed on one channel."""
    return ChannelTopic(
        name=f"project-{project_id}",
        bindings=(
            TableBinding("project_members_enhanced", filter=_project_filter(project_id)),
            TableBinding("audit_log", filter=_project_filter(project_id)),
        ),
    )


def project_rules(project_id: str) -> List[ReconciliationRule]:
    return [
        ReconciliationRule("project_members_enhanced", ("project_members", project_id), MEMBER_PATCHABLE),
        ReconciliationRule("audit_log", ("audit_log", project_id)),
    ]


# =============================================================================
# TASK BOARD
# =============================================================================

def tasks_topic() -> ChannelTopic:
    return ChannelTopic(
        name="schema-db-changes",
        bindings=(
            TableBinding("tasks"),
            TableBinding("task_labels"),
        ),
    )


def task_rules() -> List[ReconciliationRule]:
    # Labels feed task filtering, so any label change refetches the board
    return [
        ReconciliationRule("tasks", ("tasks",), TASK_PATCHABLE),
        ReconciliationRule("task_labels", ("tasks",)),
    ]


# =============================================================================
# PROJECT FILES
# =============================================================================

def file_updates_topic(project_id: str) -> ChannelTopic:
    return ChannelTopic(
        name=f"file-updates-{project_id}",
        bindings=(TableBinding("documents", filter=_project_filter(project_id)),),
    )


def file_rules(project_id: str) -> List[ReconciliationRule]:
    return [ReconciliationRule("documents", ("documents", project_id), DOCUMENT_PATCHABLE)]


@dataclass(frozen=True)
class FileUpdate:
    id: object
    project_id: object
    file_name: str
    action: ChangeAction
    uploader_id: str
    created_at: str


class FileActivityFeed:
    """Most recent document changes of a project, newest first."""

    def __init__(
        self,
        notifier: Notifier,
        on_update: Optional[Callable[[FileUpdate], None]] = None,
        max_items: int = 10,
    ):
        self.notifier = notifier
        self.on_update = on_update
        self.max_items = max_items
        self.updates: List[FileUpdate] = []

    def __call__(self, event: ChangeEvent) -> Optional[FileUpdate]:
        record = event.record
        if not record or "id" not in record:
            return None

        update = FileUpdate(
            id=record["id"],
            project_id=record.get("project_id"),
            file_name=record.get("file_name") or "Unknown file",
            action=event.action,
            uploader_id=record.get("uploader_id") or "",
            created_at=record.get("created_at") or event.timestamp,
        )
        self.updates = [update, *self.updates][:self.max_items]

        name = record.get("file_name") or "A file"
        if event.action == ChangeAction.INSERT:
            self.notifier.notify("New file uploaded", f"{name} was added to the project")
        elif event.action == ChangeAction.DELETE:
            self.notifier.notify("File deleted", f"{name} was removed from the project", variant=DESTRUCTIVE)

        if self.on_update is not None:
            self.on_update(update)
        return update
