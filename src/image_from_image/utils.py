"""Utilities for diagnostic file naming and delays."""

import asyncio
import logging
import re
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


def unique_artifact_path(directory: Path, prefix: str = "screenshot", suffix: str = ".png") -> Path:
    """Allocate a fresh, filesystem-safe path for a diagnostic artifact.

    Args:
        directory: Target directory (created if missing).
        prefix: Free-form label, e.g. 'error_chatgpt_img1.jpg_attempt1'.
        suffix: File extension including the dot.

    Returns:
        A path that does not exist yet.
    """
    directory.mkdir(parents=True, exist_ok=True)
    # Include microseconds to avoid collisions when called multiple times per second.
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")

    # Sanitize prefix for filesystem
    safe_prefix = re.sub(r"[^\w\-]", "_", prefix)[:80]
    base = f"{safe_prefix}_{timestamp}"
    file_path = directory / f"{base}{suffix}"
    if file_path.exists():
        for i in range(1, 10_000):
            candidate = directory / f"{base}_{i}{suffix}"
            if not candidate.exists():
                file_path = candidate
                break
        else:
            raise RuntimeError("Failed to allocate a unique artifact filename after 10,000 attempts")
    return file_path


async def pause(seconds: float, reason: str) -> None:
    """Named stabilization delay, logged so long pauses are never a mystery."""
    if seconds <= 0:
        return
    logger.debug(f"Waiting {seconds:g}s ({reason})")
    await asyncio.sleep(seconds)
