"""Permission gating for tools that touch paths.

The target path is taken from the first of path/filename/file/directory/root
in the call arguments (the working directory when none is given), made
absolute, and checked against the session allow-list. Unknown paths go to
the PermissionDelegate; no delegate means deny.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from mnemos.tools.base import BaseTool

logger = structlog.get_logger()

PATH_ARGUMENT_KEYS = ("path", "filename", "file", "directory", "root")


class PermissionDecision(StrEnum):
    approve = "approve"
    deny = "deny"
    approve_for_session = "approve_for_session"


@dataclass(frozen=True)
class PermissionResponse:
    decision: PermissionDecision
    path: str | None = None

    @classmethod
    def approve(cls) -> PermissionResponse:
        return cls(PermissionDecision.approve)

    @classmethod
    def deny(cls) -> PermissionResponse:
        return cls(PermissionDecision.deny)

    @classmethod
    def approve_for_session(cls, path: str) -> PermissionResponse:
        return cls(PermissionDecision.approve_for_session, path)


class PermissionDelegate(ABC):
    """Asks a human (or policy) whether a tool call may proceed."""

    @abstractmethod
    async def request_permission(
        self, tool: BaseTool, arguments: dict[str, str]
    ) -> PermissionResponse: ...


def resolve_target_path(arguments: dict[str, Any], working_directory: str) -> str:
    """Absolute, normalized path a call operates on."""
    raw: str | None = None
    for key in PATH_ARGUMENT_KEYS:
        value = arguments.get(key)
        if isinstance(value, str) and value:
            raw = value
            break

    if raw is None:
        path = working_directory
    elif raw.startswith("~"):
        path = os.path.expanduser(raw)
    elif os.path.isabs(raw):
        path = raw
    else:
        path = os.path.join(working_directory, raw)
    return os.path.normpath(path)


def is_path_within(path: str, allowed: str) -> bool:
    """Exact match or strict directory prefix (/foo/bar never matches /foo/bar_x)."""
    path = os.path.normpath(path)
    allowed = os.path.normpath(allowed)
    if path == allowed:
        return True
    prefix = allowed if allowed.endswith(os.sep) else allowed + os.sep
    return path.startswith(prefix)


class PermissionGate:
    """Per-session permission checks with a remembered allow-list."""

    def __init__(self, delegate: PermissionDelegate | None = None) -> None:
        self._delegate = delegate
        self._allowed_paths: list[str] = []

    @property
    def allowed_paths(self) -> list[str]:
        return list(self._allowed_paths)

    def set_delegate(self, delegate: PermissionDelegate | None) -> None:
        self._delegate = delegate

    def allow_path(self, path: str, working_directory: str | None = None) -> None:
        """Remember path for the session. Relative paths resolve against working_directory."""
        if working_directory is not None:
            normalized = resolve_target_path({"path": path}, working_directory)
        else:
            normalized = os.path.normpath(os.path.expanduser(path))
        if normalized not in self._allowed_paths:
            self._allowed_paths.append(normalized)

    def is_path_allowed(self, path: str) -> bool:
        return any(is_path_within(path, allowed) for allowed in self._allowed_paths)

    async def check(
        self, tool: BaseTool, arguments: dict[str, Any], working_directory: str
    ) -> bool:
        if not tool.requires_permission:
            return True

        target = resolve_target_path(arguments, working_directory)
        if self.is_path_allowed(target):
            logger.info("permission_auto_granted", tool_name=tool.name, path=target)
            return True

        if self._delegate is None:
            logger.warning("permission_no_delegate", tool_name=tool.name, path=target)
            return False

        response = await self._delegate.request_permission(
            tool, {k: str(v) for k, v in arguments.items()}
        )
        if response.decision is PermissionDecision.approve_for_session:
            self.allow_path(response.path or target, working_directory)
            logger.info(
                "permission_granted_for_session",
                tool_name=tool.name,
                path=response.path or target,
            )
            return True
        if response.decision is PermissionDecision.approve:
            logger.info("permission_granted_once", tool_name=tool.name)
            return True
        logger.info("permission_denied", tool_name=tool.name)
        return False
