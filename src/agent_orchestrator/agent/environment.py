"""
Environment context sent to the model at the start of every chat.
"""

import platform
from datetime import datetime
from pathlib import Path

import structlog

from ..config import Settings

logger = structlog.get_logger()

MAX_LISTED_ENTRIES = 50


def _folder_structure(root: Path) -> str:
    try:
        entries = sorted(root.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
    except OSError as e:
        logger.warning("Could not list working directory", path=str(root), error=str(e))
        return f"{root}/ (unreadable)"

    lines = [f"{root}/"]
    for entry in entries[:MAX_LISTED_ENTRIES]:
        lines.append(f"├── {entry.name}/" if entry.is_dir() else f"├── {entry.name}")
    if len(entries) > MAX_LISTED_ENTRIES:
        lines.append(f"└── ... ({len(entries) - MAX_LISTED_ENTRIES} more)")
    return "\n".join(lines)


def get_directory_context_string(settings: Settings) -> str:
    """Describe the working directory and its top-level contents."""
    root = Path(settings.target_dir).resolve()
    return (
        f"I'm currently working in the directory: {root}\n"
        f"Here is the folder structure of the current working directories:\n\n"
        f"{_folder_structure(root)}"
    )


def get_environment_context(settings: Settings, now: datetime | None = None) -> list[str]:
    """Build the environment context parts for the chat handshake."""
    now = now or datetime.now()
    today = now.strftime("%A, %B %d, %Y")
    intro = (
        "This is the agent. We are setting up the context for our chat.\n"
        f"Today's date is {today}.\n"
        f"My operating system is: {platform.system().lower()}"
    )
    return [intro, get_directory_context_string(settings)]
