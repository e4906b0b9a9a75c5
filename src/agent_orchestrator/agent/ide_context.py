"""
Editor context injection.

Keeps the model informed about what the user has open in their editor. The
first payload of a chat carries the full picture; later payloads carry only
what changed since the last one that was delivered.
"""

import copy
import json
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger()

FULL_CONTEXT_HEADER = (
    "Here is the user's editor context as a JSON object. This is for your information only."
)
DELTA_CONTEXT_HEADER = (
    "Here is a summary of changes in the user's editor context, in JSON format. "
    "This is for your information only."
)


@dataclass
class Cursor:
    """Zero-based cursor position."""

    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass
class OpenFile:
    """A file open in the editor."""

    path: str
    is_active: bool = False
    cursor: Cursor | None = None
    selected_text: str | None = None


@dataclass
class IdeContext:
    """Snapshot of the editor's workspace state."""

    open_files: list[OpenFile] = field(default_factory=list)

    @property
    def active_file(self) -> OpenFile | None:
        return next((f for f in self.open_files if f.is_active), None)

    @property
    def other_open_files(self) -> list[str]:
        return [f.path for f in self.open_files if not f.is_active]


def _describe_active_file(active: OpenFile) -> dict[str, Any]:
    data: dict[str, Any] = {"path": active.path}
    if active.cursor:
        data["cursor"] = active.cursor.to_dict()
    if active.selected_text:
        data["selectedText"] = active.selected_text
    return data


def _render(header: str, payload: dict[str, Any]) -> list[str]:
    return [header, "```json", json.dumps(payload, indent=2), "```"]


class IdeContextDiffer:
    """Computes full or incremental editor context payloads."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def get_context_parts(
        self,
        current: IdeContext | None,
        last_sent: IdeContext | None,
        force_full: bool,
    ) -> tuple[list[str], IdeContext | None]:
        """Compute the payload for ``current``.

        Returns the text parts to send (empty when there is nothing to say)
        and the snapshot to remember as delivered.
        """
        if current is None:
            return [], None

        if force_full or last_sent is None:
            parts = self._full_parts(current)
        else:
            parts = self._delta_parts(current, last_sent)

        if parts and self.debug:
            logger.debug("Editor context payload", payload="\n".join(parts))
        return parts, copy.deepcopy(current)

    def _full_parts(self, current: IdeContext) -> list[str]:
        context_data: dict[str, Any] = {}

        active = current.active_file
        if active:
            context_data["activeFile"] = _describe_active_file(active)

        other_open_files = current.other_open_files
        if other_open_files:
            context_data["otherOpenFiles"] = other_open_files

        if not context_data:
            return []
        return _render(FULL_CONTEXT_HEADER, context_data)

    def _delta_parts(self, current: IdeContext, last_sent: IdeContext) -> list[str]:
        changes: dict[str, Any] = {}

        last_paths = dict.fromkeys(f.path for f in last_sent.open_files)
        current_paths = dict.fromkeys(f.path for f in current.open_files)

        opened = [p for p in current_paths if p not in last_paths]
        if opened:
            changes["filesOpened"] = opened

        closed = [p for p in last_paths if p not in current_paths]
        if closed:
            changes["filesClosed"] = closed

        last_active = last_sent.active_file
        current_active = current.active_file

        if current_active:
            if not last_active or last_active.path != current_active.path:
                changes["activeFileChanged"] = _describe_active_file(current_active)
            else:
                last_cursor = last_active.cursor
                current_cursor = current_active.cursor
                if current_cursor and (
                    not last_cursor
                    or last_cursor.line != current_cursor.line
                    or last_cursor.character != current_cursor.character
                ):
                    changes["cursorMoved"] = {
                        "path": current_active.path,
                        "cursor": current_cursor.to_dict(),
                    }

                last_selected = last_active.selected_text or ""
                current_selected = current_active.selected_text or ""
                if last_selected != current_selected:
                    changes["selectionChanged"] = {
                        "path": current_active.path,
                        "selectedText": current_selected,
                    }
        elif last_active:
            changes["activeFileChanged"] = {
                "path": None,
                "previousPath": last_active.path,
            }

        if not changes:
            return []
        return _render(DELTA_CONTEXT_HEADER, {"changes": changes})
