"""Best-effort "show this file in the native file browser"."""

from __future__ import annotations

import subprocess
import sys
from typing import List, Optional

from smart_finder.utils.logging import get_logger

logger = get_logger("smart_finder.infrastructure.reveal")


def reveal_command(path: str, platform: str = sys.platform) -> Optional[List[str]]:
    """Command that opens the file browser with ``path`` selected, None if unsupported."""
    if platform.startswith("win"):
        return ["explorer", "/select,", path]
    if platform == "darwin":
        return ["open", "-R", path]
    if platform.startswith("linux"):
        return ["nautilus", "--select", path]
    return None


def reveal_in_file_browser(path: str) -> bool:
    """Fire-and-forget launch; returns False when nothing could be started."""
    command = reveal_command(path)
    if command is None:
        logger.warning("Reveal not supported on this platform | platform=%s", sys.platform)
        return False
    try:
        subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as exc:
        logger.warning("Cannot launch file browser | command=%s error=%s", command[0], exc)
        return False
    logger.info("📂 Revealed file | path=%s", path)
    return True
