"""
DocScrub Style Cleaner Module

Detects and removes unused styles from DOCX packages.
A style is retained if it is referenced from document content, marked as a
default for its family, or reachable from such a style through basedOn or
link. Everything else in styles.xml is unreachable and may be dropped.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from lxml import etree

from errors import MalformedXml
from package_model import DOCUMENT_XML_PATH, NUMBERING_XML_PATH, STYLES_XML_PATH, DocxPackage
from results import StageResult
from xml_codec import child_value, find_all, has_name, load_part, qn, remove_element, store_part

logger = logging.getLogger(__name__)

STAGE = "styles"

# Elements whose w:val names a style; the last two appear in numbering.xml
STYLE_REFERENCE_TAGS = ("w:pStyle", "w:rStyle", "w:tblStyle", "w:numStyleLink", "w:styleLink")

# Story parts besides the body that may carry style references
SECONDARY_CONTENT_PREFIXES = (
    "word/header",
    "word/footer",
    "word/footnotes",
    "word/endnotes",
    "word/comments",
)

TRUE_VALUES = {"1", "true", "on"}


@dataclass(frozen=True)
class StyleDefinition:
    """Information about a style definition."""
    style_id: str
    is_default: bool = False
    based_on: Optional[str] = None
    linked: Optional[str] = None
    style_type: str = "paragraph"

    def edges(self) -> tuple[str, ...]:
        return tuple(ref for ref in (self.based_on, self.linked) if ref)


@dataclass
class StyleCleanResult:
    """Results from style analysis."""
    total_styles: int = 0
    used_styles: set = field(default_factory=set)
    default_styles: set = field(default_factory=set)
    retained_styles: set = field(default_factory=set)
    unused_styles: set = field(default_factory=set)


def read_style_definitions(styles_root: etree._Element) -> list[StyleDefinition]:
    """Extract all style definitions from styles.xml, in document order."""
    styles = []
    for style_elem in styles_root.iter(qn("w:style")):
        style_id = style_elem.get(qn("w:styleId"))
        if not style_id:
            continue
        styles.append(StyleDefinition(
            style_id=style_id,
            is_default=(style_elem.get(qn("w:default"), "").lower() in TRUE_VALUES),
            based_on=child_value(style_elem, "w:basedOn"),
            linked=child_value(style_elem, "w:link"),
            style_type=style_elem.get(qn("w:type"), "paragraph"),
        ))
    return styles


def collect_used_style_ids(content_roots: Iterable[etree._Element]) -> set[str]:
    """Style ids referenced by paragraph, run, table and list style elements."""
    is_reference = has_name(*STYLE_REFERENCE_TAGS)
    used = set()
    for root in content_roots:
        for ref in find_all(root, is_reference):
            val = ref.get(qn("w:val"))
            if val:
                used.add(val)
    return used


def compute_style_closure(definitions: Iterable[StyleDefinition], seeds: Iterable[str]) -> set[str]:
    """
    Breadth-first closure over basedOn and link edges.

    Ids with no definition end the walk without error and are not part of
    the result. Cycles terminate through the visited set.
    """
    by_id = {style.style_id: style for style in definitions}
    visited = set()
    queue = deque(seeds)
    while queue:
        style_id = queue.popleft()
        if not style_id or style_id in visited or style_id not in by_id:
            continue
        visited.add(style_id)
        queue.extend(ref for ref in by_id[style_id].edges() if ref not in visited)
    return visited


class StyleCleaner:
    """
    Analyzes and removes unused styles from a DocxPackage.

    Strategy:
    1. Parse styles.xml to get all defined styles
    2. Scan the body (and other story parts) for style references
    3. Seed with the referenced ids plus every default style
    4. Expand the seed set over basedOn/link edges
    5. Drop every style outside the closure, preserving order
    """

    def analyze(self, package: DocxPackage) -> Optional[StyleCleanResult]:
        """
        Compute which styles are retained without modifying the package.
        Returns None when the package has no styles or body part.
        Raises MalformedXml when a part needed for the analysis is unreadable.
        """
        styles_root = load_part(package, STYLES_XML_PATH)
        document_root = load_part(package, DOCUMENT_XML_PATH)
        if styles_root is None or document_root is None:
            return None
        return self._analyze(package, styles_root, document_root)

    def clean(self, package: DocxPackage) -> StageResult:
        """Remove unreachable style definitions from styles.xml."""
        try:
            styles_root = load_part(package, STYLES_XML_PATH)
            document_root = load_part(package, DOCUMENT_XML_PATH)
            if styles_root is None:
                return StageResult.skipped(STAGE, "no styles part")
            if document_root is None:
                return StageResult.skipped(STAGE, "no document part")
            analysis = self._analyze(package, styles_root, document_root)
        except MalformedXml as e:
            logger.warning("Skipping style cleaning: %s", e)
            return StageResult.skipped(STAGE, str(e), warnings=[str(e)])

        if not analysis.unused_styles:
            logger.info("No unused styles found to remove")
            return StageResult.skipped(STAGE, "no unused styles found")

        original_size = len(package.get(STYLES_XML_PATH))
        removed = []
        for style_elem in list(styles_root.iter(qn("w:style"))):
            style_id = style_elem.get(qn("w:styleId"))
            if style_id in analysis.unused_styles:
                remove_element(style_elem)
                removed.append(style_id)
                logger.debug("Removed style: %s", style_id)

        store_part(package, STYLES_XML_PATH, styles_root)
        logger.info("Stripped %d unused style definition(s)", len(removed))
        return StageResult.ok(
            STAGE,
            removed=removed,
            bytes_saved=original_size - len(package.get(STYLES_XML_PATH)),
        )

    def _analyze(self, package: DocxPackage, styles_root: etree._Element,
                 document_root: etree._Element) -> StyleCleanResult:
        result = StyleCleanResult()
        definitions = read_style_definitions(styles_root)
        result.total_styles = len(definitions)

        result.used_styles = collect_used_style_ids(self._content_roots(package, document_root))
        result.default_styles = {style.style_id for style in definitions if style.is_default}
        logger.debug("Found %d defined, %d directly used, %d default styles",
                     result.total_styles, len(result.used_styles), len(result.default_styles))

        result.retained_styles = compute_style_closure(
            definitions, result.used_styles | result.default_styles
        )
        result.unused_styles = {style.style_id for style in definitions} - result.retained_styles
        return result

    def _content_roots(self, package: DocxPackage, document_root: etree._Element) -> list[etree._Element]:
        """Body plus any secondary story parts. Unreadable secondary parts abort the stage."""
        roots = [document_root]
        for name in package.names():
            if not name.endswith(".xml"):
                continue
            if name == NUMBERING_XML_PATH or name.startswith(SECONDARY_CONTENT_PREFIXES):
                roots.append(load_part(package, name))
        return roots
