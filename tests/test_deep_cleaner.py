from deep_cleaner import remove_embedded_fonts, remove_unused_media
from docx_factory import (
    FONT_TABLE_TYPE,
    FONT_TYPE,
    IMAGE_TYPE,
    R_NS,
    STYLES_TYPE,
    W_NS,
    base_parts,
    content_types_xml,
    rels_xml,
    settings_xml,
)
from package_model import (
    CONTENT_TYPES_PATH,
    DOCUMENT_RELS_PATH,
    FONT_TABLE_RELS_PATH,
    FONT_TABLE_XML_PATH,
    SETTINGS_XML_PATH,
    DocxPackage,
)
from relationships import RELTYPE_FONT_TABLE, parse_relationships

ODTTF_TYPE = "application/vnd.openxmlformats-officedocument.obfuscatedFont"


def _font_package(**overrides) -> DocxPackage:
    parts = base_parts()
    parts.update({
        CONTENT_TYPES_PATH: content_types_xml(overrides=[("word/fonts/font1.odttf", ODTTF_TYPE)]),
        DOCUMENT_RELS_PATH: rels_xml(
            ("rId1", STYLES_TYPE, "styles.xml"),
            ("rId2", FONT_TABLE_TYPE, "fontTable.xml"),
        ),
        FONT_TABLE_RELS_PATH: rels_xml(
            ("rId1", FONT_TYPE, "fonts/font1.odttf"),
            ("rId2", FONT_TYPE, "fonts/font2.odttf"),
        ),
        SETTINGS_XML_PATH: settings_xml(embed_fonts=True),
        FONT_TABLE_XML_PATH: b"<w:fonts xmlns:w='http://schemas.openxmlformats.org/wordprocessingml/2006/main'/>",
        "word/fonts/font1.odttf": b"\x00" * 2048,
        "word/fonts/font2.odttf": b"\x01" * 2048,
    })
    parts.update(overrides)
    return DocxPackage(parts)


def test_font_removal_is_complete():
    package = _font_package()
    result = remove_embedded_fonts(package)

    assert result.changed
    assert package.entries_under("word/fonts/") == []
    assert sorted(result.removed) == ["word/fonts/font1.odttf", "word/fonts/font2.odttf"]
    assert result.bytes_saved == 4096

    doc_rels = parse_relationships(package.get(DOCUMENT_RELS_PATH))
    assert [r for r in doc_rels if r.rel_type == RELTYPE_FONT_TABLE] == []
    assert [r.r_id for r in doc_rels] == ["rId1"]

    assert parse_relationships(package.get(FONT_TABLE_RELS_PATH)) == []

    settings = package.get(SETTINGS_XML_PATH)
    assert b"embedTrueTypeFonts" not in settings
    assert b"saveSubsetFonts" not in settings
    assert b"defaultTabStop" in settings

    assert b"font1.odttf" not in package.get(CONTENT_TYPES_PATH)


def test_font_removal_without_fonts_is_skipped():
    parts = base_parts()
    parts[SETTINGS_XML_PATH] = settings_xml(embed_fonts=True)
    package = DocxPackage(parts)
    result = remove_embedded_fonts(package)
    assert not result.changed
    assert package.get(SETTINGS_XML_PATH) == parts[SETTINGS_XML_PATH]


def test_font_removal_tolerates_missing_rels_and_settings():
    package = _font_package()
    package.remove(DOCUMENT_RELS_PATH)
    package.remove(SETTINGS_XML_PATH)
    result = remove_embedded_fonts(package)
    assert result.changed
    assert result.warnings == []
    assert package.entries_under("word/fonts/") == []
    assert package.get(SETTINGS_XML_PATH) is None


def test_font_removal_leaves_malformed_settings_untouched():
    package = _font_package(**{SETTINGS_XML_PATH: b"<w:settings"})
    result = remove_embedded_fonts(package)
    assert result.changed
    assert len(result.warnings) == 1
    assert package.get(SETTINGS_XML_PATH) == b"<w:settings"
    assert package.entries_under("word/fonts/") == []


def _media_package(doc_rels: bytes, **extra) -> DocxPackage:
    parts = base_parts()
    parts.update({
        DOCUMENT_RELS_PATH: doc_rels,
        "word/media/img1.png": b"one",
        "word/media/img2.png": b"two",
        "word/media/img3.png": b"three",
    })
    parts.update(extra)
    return DocxPackage(parts)


def test_media_pruning_keeps_only_referenced():
    package = _media_package(rels_xml(
        ("rId1", STYLES_TYPE, "styles.xml"),
        ("rId2", IMAGE_TYPE, "media/img1.png"),
    ))
    result = remove_unused_media(package)
    assert result.changed
    assert sorted(result.removed) == ["word/media/img2.png", "word/media/img3.png"]
    assert [path for path, _ in package.entries_under("word/media/")] == ["word/media/img1.png"]


def test_media_referenced_from_header_is_kept():
    package = _media_package(
        rels_xml(("rId2", IMAGE_TYPE, "media/img1.png")),
        **{"word/_rels/header1.xml.rels": rels_xml(("rId1", IMAGE_TYPE, "media/img3.png"))},
    )
    remove_unused_media(package)
    assert sorted(path for path, _ in package.entries_under("word/media/")) == [
        "word/media/img1.png", "word/media/img3.png",
    ]


def test_media_pruning_handles_parent_relative_targets():
    package = _media_package(rels_xml(("rId2", IMAGE_TYPE, "../media/img2.png")))
    remove_unused_media(package)
    assert [path for path, _ in package.entries_under("word/media/")] == ["word/media/img2.png"]


def test_media_pruning_without_relationship_part_is_skipped():
    package = _media_package(b"")
    package.remove(DOCUMENT_RELS_PATH)
    result = remove_unused_media(package)
    assert not result.changed
    assert len(package.entries_under("word/media/")) == 3


def test_media_pruning_aborts_on_malformed_relationships():
    package = _media_package(
        rels_xml(("rId2", IMAGE_TYPE, "media/img1.png")),
        **{"word/_rels/header1.xml.rels": b"<Relationships"},
    )
    result = remove_unused_media(package)
    assert not result.changed
    assert result.warnings
    assert len(package.entries_under("word/media/")) == 3


def test_media_pruning_ignores_font_stage_edits():
    package = _font_package(**{
        "word/media/img1.png": b"one",
        "word/media/img2.png": b"two",
        DOCUMENT_RELS_PATH: rels_xml(
            ("rId1", STYLES_TYPE, "styles.xml"),
            ("rId2", FONT_TABLE_TYPE, "fontTable.xml"),
            ("rId3", IMAGE_TYPE, "media/img1.png"),
        ),
    })
    remove_embedded_fonts(package)
    remove_unused_media(package)
    assert [path for path, _ in package.entries_under("word/media/")] == ["word/media/img1.png"]


def test_media_pruning_decodes_escaped_targets():
    package = _media_package(
        rels_xml(("rId2", IMAGE_TYPE, "media/my%20photo.png")),
        **{"word/media/my photo.png": b"spaced"},
    )
    result = remove_unused_media(package)
    assert package.get("word/media/my photo.png") == b"spaced"
    assert "word/media/my photo.png" not in result.removed


def test_font_removal_drops_embed_references_from_font_table():
    font_table = (
        f'<w:fonts xmlns:w="{W_NS}" xmlns:r="{R_NS}">'
        '<w:font w:name="Custom"><w:embedRegular r:id="rId1"/><w:embedBold r:id="rId2"/></w:font>'
        '<w:font w:name="Calibri"><w:family w:val="swiss"/></w:font>'
        "</w:fonts>"
    ).encode()
    package = _font_package(**{FONT_TABLE_XML_PATH: font_table})
    remove_embedded_fonts(package)

    data = package.get(FONT_TABLE_XML_PATH)
    assert b"embedRegular" not in data
    assert b"embedBold" not in data
    assert b'w:name="Custom"' in data
    assert b'w:name="Calibri"' in data
    assert parse_relationships(package.get(FONT_TABLE_RELS_PATH)) == []


def test_malformed_font_table_keeps_its_relationships():
    package = _font_package(**{FONT_TABLE_XML_PATH: b"<w:fonts"})
    result = remove_embedded_fonts(package)
    assert result.changed
    assert result.warnings
    assert package.get(FONT_TABLE_XML_PATH) == b"<w:fonts"
    assert len(parse_relationships(package.get(FONT_TABLE_RELS_PATH))) == 2
