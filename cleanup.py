"""
DocScrub Cleanup Module

Finds and deletes files produced by earlier runs (_optimized, _rebuilt,
_merged and numbered split outputs) in one directory.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from errors import IoFailure
from processor import is_generated_file

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """Results from a cleanup run."""
    deleted: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)


def find_generated_files(directory: Path) -> list[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        raise IoFailure(directory, "The path for 'clean' must be a directory.")
    return sorted(p for p in directory.iterdir() if p.is_file() and is_generated_file(p))


def delete_files(paths) -> CleanupResult:
    """Delete each path; a failure on one file does not stop the rest."""
    result = CleanupResult()
    for path in paths:
        try:
            Path(path).unlink()
        except OSError as e:
            logger.error("Failed to delete %s: %s", path, e)
            result.failed.append((Path(path), str(e)))
            continue
        logger.debug("Deleted %s", path)
        result.deleted.append(Path(path))
    return result
