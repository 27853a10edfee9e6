"""
DocScrub Package Model Module

In-memory model of a DOCX package: a mapping from archive path to bytes.

The whole archive is materialized on load and regenerated on serialize().
Entries change only through put() and remove(); both take the package lock so
parallel stages can write back safely.
"""

import io
import threading
import zipfile
from pathlib import Path
from typing import Optional

from errors import CorruptArchive, IoFailure

# Standard DOCX part locations
CONTENT_TYPES_PATH = "[Content_Types].xml"
DOCUMENT_XML_PATH = "word/document.xml"
STYLES_XML_PATH = "word/styles.xml"
SETTINGS_XML_PATH = "word/settings.xml"
NUMBERING_XML_PATH = "word/numbering.xml"
DOCUMENT_RELS_PATH = "word/_rels/document.xml.rels"
FONT_TABLE_XML_PATH = "word/fontTable.xml"
FONT_TABLE_RELS_PATH = "word/_rels/fontTable.xml.rels"
FONTS_PREFIX = "word/fonts/"
MEDIA_PREFIX = "word/media/"

# Maximum-effort deflate, applied to every entry
COMPRESSION_LEVEL = 9

# Timestamp for entries that did not come from the source archive
DEFAULT_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class DocxPackage:
    """
    A zip-of-XML-parts package held entirely in memory.

    Paths are archive-relative and unique. Iteration order follows the source
    archive, with new entries appended, so it is stable within one load.
    """

    def __init__(self, parts: Optional[dict[str, bytes]] = None):
        self._parts: dict[str, bytes] = dict(parts or {})
        self._timestamps: dict[str, tuple] = {}
        self._lock = threading.Lock()

    @classmethod
    def load(cls, data: bytes) -> "DocxPackage":
        """Read a package from raw archive bytes."""
        package = cls()
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    package._parts[info.filename] = zf.read(info.filename)
                    package._timestamps[info.filename] = info.date_time
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, NotImplementedError) as e:
            raise CorruptArchive(f"Not a valid zip archive: {e}") from e
        return package

    @classmethod
    def open(cls, path: Path) -> "DocxPackage":
        """Read a package from disk."""
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise IoFailure(path, str(e)) from e
        return cls.load(data)

    def __contains__(self, path: str) -> bool:
        return path in self._parts

    def __len__(self) -> int:
        return len(self._parts)

    def names(self) -> list[str]:
        return list(self._parts)

    def get(self, path: str) -> Optional[bytes]:
        """Return entry bytes, or None when the entry is absent."""
        return self._parts.get(path)

    def put(self, path: str, data: bytes):
        """Insert or replace an entry."""
        with self._lock:
            self._parts[path] = data

    def remove(self, path: str) -> bool:
        """Remove an entry. Removing an absent path is a no-op."""
        with self._lock:
            self._timestamps.pop(path, None)
            return self._parts.pop(path, None) is not None

    def entries_under(self, prefix: str) -> list[tuple[str, bytes]]:
        """Return (path, bytes) for every entry below a folder prefix."""
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        return [(name, data) for name, data in self._parts.items() if name.startswith(prefix)]

    def serialize(self) -> bytes:
        """Regenerate the archive with maximum-effort deflate."""
        buffer = io.BytesIO()
        # [Content_Types].xml goes first, as Office writes it
        ordered = sorted(self._parts, key=lambda name: name != CONTENT_TYPES_PATH)
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for name in ordered:
                info = zipfile.ZipInfo(name, date_time=self._timestamps.get(name, DEFAULT_DATE_TIME))
                info.compress_type = zipfile.ZIP_DEFLATED
                zf.writestr(info, self._parts[name], compresslevel=COMPRESSION_LEVEL)
        return buffer.getvalue()
