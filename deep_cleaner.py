"""
DocScrub Deep Cleaner Module

Removes package entries at the ZIP level:
- Embedded fonts, with their font-table relationships and the settings flags
  that ask Word to embed fonts again on save
- Orphaned media that no relationship in the package points to

SAFETY PRINCIPLES:
1. Media is removed only when every relationship part could be read
2. Sub-steps that find their part absent are skipped, not failed
3. A part that cannot be parsed is left byte-identical
"""

import logging

from errors import MalformedXml
from package_model import (
    CONTENT_TYPES_PATH,
    DOCUMENT_RELS_PATH,
    FONT_TABLE_RELS_PATH,
    FONT_TABLE_XML_PATH,
    FONTS_PREFIX,
    MEDIA_PREFIX,
    SETTINGS_XML_PATH,
    DocxPackage,
)
from relationships import (
    RELTYPE_FONT,
    RELTYPE_FONT_TABLE,
    filter_by_type,
    parse_relationships,
    referenced_targets,
    resolve_target,
    serialize_relationships,
    source_part_for,
)
from results import StageResult
from xml_codec import children_of, find_all, has_name, load_part, qn, remove_element, store_part

logger = logging.getLogger(__name__)

FONTS_STAGE = "fonts"
MEDIA_STAGE = "media"

# settings.xml children that make Word embed fonts on save
FONT_EMBEDDING_FLAGS = ("embedTrueTypeFonts", "embedSystemFonts", "saveSubsetFonts")

# fontTable.xml children that point at an embedded font binary by r:id
FONT_EMBED_TAGS = ("w:embedRegular", "w:embedBold", "w:embedItalic", "w:embedBoldItalic")


def remove_embedded_fonts(package: DocxPackage) -> StageResult:
    """Remove every entry under word/fonts/ and the metadata that points at them."""
    fonts = package.entries_under(FONTS_PREFIX)
    if not fonts:
        logger.info("No embedded fonts found")
        return StageResult.skipped(FONTS_STAGE, "no embedded fonts found")

    result = StageResult.ok(FONTS_STAGE)
    for path, data in fonts:
        package.remove(path)
        result.removed.append(path)
        result.bytes_saved += len(data)
    logger.info("Removed %d font file(s)", len(fonts))

    _drop_font_table_relationships(package, result)
    _drop_font_relationships(package, set(result.removed), result)
    _clear_font_embedding_flags(package, result)
    drop_content_type_overrides(package, result.removed, result)
    return result


def remove_unused_media(package: DocxPackage) -> StageResult:
    """Remove media entries that no relationship targets."""
    media = package.entries_under(MEDIA_PREFIX)
    if not media:
        logger.info("No media found")
        return StageResult.skipped(MEDIA_STAGE, "no media found")
    if package.get(DOCUMENT_RELS_PATH) is None:
        return StageResult.skipped(MEDIA_STAGE, f"no relationship part {DOCUMENT_RELS_PATH}")

    try:
        used = referenced_targets(package)
    except MalformedXml as e:
        logger.warning("Skipping media pruning, relationships unreadable: %s", e)
        return StageResult.skipped(MEDIA_STAGE, str(e), warnings=[str(e)])

    orphans = [(path, data) for path, data in media if path not in used]
    if not orphans:
        logger.info("No orphaned media found")
        return StageResult.skipped(MEDIA_STAGE, "no orphaned media found")

    result = StageResult.ok(MEDIA_STAGE)
    for path, data in orphans:
        package.remove(path)
        result.removed.append(path)
        result.bytes_saved += len(data)
        logger.info("Removing orphaned media: %s", path)
    drop_content_type_overrides(package, result.removed, result)
    return result


def drop_content_type_overrides(package: DocxPackage, removed_paths, result: StageResult) -> int:
    """Remove [Content_Types].xml Override entries for parts no longer in the package."""
    removed = {f"/{path}" for path in removed_paths}
    try:
        root = load_part(package, CONTENT_TYPES_PATH)
    except MalformedXml as e:
        _warn(result, f"Content types left untouched: {e}")
        return 0
    if root is None:
        return 0

    dropped = 0
    for override in children_of(root, "ct:Override"):
        if override.get("PartName") in removed:
            remove_element(override)
            dropped += 1
    if dropped:
        store_part(package, CONTENT_TYPES_PATH, root)
    return dropped


def _drop_font_table_relationships(package: DocxPackage, result: StageResult):
    try:
        rels = parse_relationships(package.get(DOCUMENT_RELS_PATH), DOCUMENT_RELS_PATH)
    except MalformedXml as e:
        _warn(result, f"Font table relationships left untouched: {e}")
        return
    kept = filter_by_type(rels, lambda rel_type: rel_type != RELTYPE_FONT_TABLE)
    if len(kept) < len(rels):
        package.put(DOCUMENT_RELS_PATH, serialize_relationships(kept))
        logger.info("Removed font table relationships")


def _drop_font_relationships(package: DocxPackage, removed: set, result: StageResult):
    """
    Drop font-type relationships of the font table that pointed at removed
    entries, together with the fontTable.xml embed elements that name them.
    """
    try:
        rels = parse_relationships(package.get(FONT_TABLE_RELS_PATH), FONT_TABLE_RELS_PATH)
        font_table = load_part(package, FONT_TABLE_XML_PATH)
    except MalformedXml as e:
        _warn(result, f"Font relationships left untouched: {e}")
        return
    source = source_part_for(FONT_TABLE_RELS_PATH)
    dropped = {
        rel.r_id for rel in rels
        if rel.rel_type == RELTYPE_FONT and resolve_target(source, rel.target) in removed
    }
    if not dropped:
        return
    package.put(FONT_TABLE_RELS_PATH,
                serialize_relationships([rel for rel in rels if rel.r_id not in dropped]))

    if font_table is None:
        return
    is_embed = has_name(*FONT_EMBED_TAGS)
    embeds = find_all(font_table, lambda elem: is_embed(elem) and elem.get(qn("r:id")) in dropped)
    for embed in embeds:
        remove_element(embed)
    if embeds:
        store_part(package, FONT_TABLE_XML_PATH, font_table)


def _clear_font_embedding_flags(package: DocxPackage, result: StageResult):
    try:
        root = load_part(package, SETTINGS_XML_PATH)
    except MalformedXml as e:
        _warn(result, f"Settings left untouched: {e}")
        return
    if root is None:
        return

    flags = [flag for name in FONT_EMBEDDING_FLAGS for flag in children_of(root, f"w:{name}")]
    for flag in flags:
        remove_element(flag)
    if flags:
        store_part(package, SETTINGS_XML_PATH, root)
        logger.info("Removed font embedding flag from document settings")


def _warn(result: StageResult, message: str):
    logger.warning(message)
    result.warnings.append(message)
