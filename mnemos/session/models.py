from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass
class Session:
    """One continuous conversation and its workspace bindings.

    attached_workspace_ids is ordered and never contains duplicates or the
    primary workspace.
    """

    title: str = "New Conversation"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    working_directory: str | None = None
    primary_workspace_id: str | None = None
    attached_workspace_ids: list[str] = field(default_factory=list)
    persona: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)

    def age_seconds(self, now: datetime | None = None) -> float:
        return ((now or datetime.now(UTC)) - self.updated_at).total_seconds()

    def attach_workspace(self, workspace_id: str, *, is_primary: bool = False) -> None:
        if is_primary:
            self.primary_workspace_id = workspace_id
            if workspace_id in self.attached_workspace_ids:
                self.attached_workspace_ids.remove(workspace_id)
        elif (
            workspace_id != self.primary_workspace_id
            and workspace_id not in self.attached_workspace_ids
        ):
            self.attached_workspace_ids.append(workspace_id)
        self.touch()

    def detach_workspace(self, workspace_id: str) -> None:
        if self.primary_workspace_id == workspace_id:
            self.primary_workspace_id = None
        elif workspace_id in self.attached_workspace_ids:
            self.attached_workspace_ids.remove(workspace_id)
        self.touch()
