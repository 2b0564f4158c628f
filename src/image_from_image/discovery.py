"""Input discovery: image files and paired subdirectories."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .config import SUPPORTED_IMAGE_EXTENSIONS
from .exceptions import DiscoveryError
from .models import ImageUnit, PairAssignment

logger = logging.getLogger(__name__)


def is_supported_image(path: Path, extensions: Iterable[str] = SUPPORTED_IMAGE_EXTENSIONS) -> bool:
    """Check if a file path has a supported image extension."""
    return path.suffix.lower() in tuple(extensions)


def find_subdirectories(base_path: str | Path) -> list[Path]:
    """List immediate subdirectories of `base_path`, sorted for stable pairing.

    Raises:
        DiscoveryError: if the base path is missing or unreadable.
    """
    base = Path(base_path).expanduser().resolve()
    logger.info(f"Searching for subdirectories in: {base}")
    try:
        subdirectories = sorted(entry for entry in base.iterdir() if entry.is_dir())
    except FileNotFoundError as e:
        raise DiscoveryError(f"Base path not found: {base}") from e
    except OSError as e:
        raise DiscoveryError(f"Failed to list subdirectories for path {base}: {e}") from e

    logger.info(f"Found {len(subdirectories)} subdirectory(s) in {base}")
    return subdirectories


def find_image_files(
    input_path: str | Path,
    recurse: bool = False,
    extensions: Iterable[str] = SUPPORTED_IMAGE_EXTENSIONS,
) -> list[Path]:
    """Find supported images at `input_path` (a file or a directory).

    Raises:
        DiscoveryError: if the path is missing or is neither file nor directory.
    """
    root = Path(input_path).expanduser().resolve()
    exts = tuple(ext.lower() for ext in extensions)
    logger.info(f"Searching for images in: {root} (recursive: {recurse})")

    if root.is_file():
        if is_supported_image(root, exts):
            return [root]
        logger.warning(f"Input file is not a supported image type: {root}")
        return []

    if not root.exists():
        raise DiscoveryError(f"Image input path not found: {root}")
    if not root.is_dir():
        raise DiscoveryError(f"Input path is neither a file nor a directory: {root}")

    pattern = "**/*" if recurse else "*"
    try:
        images = sorted(p for p in root.glob(pattern) if p.is_file() and is_supported_image(p, exts))
    except OSError as e:
        raise DiscoveryError(f"Error reading directory {root}: {e}") from e

    logger.info(f"Found {len(images)} supported image file(s) in {root}")
    return images


def build_units(paths: Iterable[Path]) -> list[ImageUnit]:
    """Number discovered files in discovery order."""
    return [ImageUnit(path=path, index=i) for i, path in enumerate(paths, start=1)]


def build_pairs(input_dirs: list[Path], profile_dirs: list[Path]) -> list[PairAssignment]:
    """Zip input groups with profiles by position; surplus entries are dropped."""
    count = min(len(input_dirs), len(profile_dirs))
    if len(input_dirs) != len(profile_dirs):
        logger.warning(f"Mismatch count: found {len(input_dirs)} inputs, {len(profile_dirs)} profiles. Processing {count} pairs.")
        for dropped in input_dirs[count:] + profile_dirs[count:]:
            logger.warning(f"No partner for {dropped}; it will not be processed")
    else:
        logger.info(f"Found {count} pairs of directories")
    return [PairAssignment(input_dir=i, profile_dir=p) for i, p in zip(input_dirs, profile_dirs)]
