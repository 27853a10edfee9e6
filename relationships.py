"""
DocScrub Relationship Index Module

Reads and writes Open Packaging Convention relationship parts (*.rels).

A relationship is a weak reference from its owning part to another archive
entry: removing a relationship never removes its target, and removing a
target never rewrites relationships on its own.
"""

import posixpath
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from urllib.parse import unquote

from lxml import etree

from xml_codec import NAMESPACES, parse_part

PACKAGE_REL_NS = NAMESPACES["rel"]
OFFICE_REL_NS = NAMESPACES["r"]

RELTYPE_IMAGE = f"{OFFICE_REL_NS}/image"
RELTYPE_FONT_TABLE = f"{OFFICE_REL_NS}/fontTable"
RELTYPE_FONT = f"{OFFICE_REL_NS}/font"

EXTERNAL = "External"


@dataclass(frozen=True)
class Relationship:
    """One <Relationship> entry of a .rels part."""
    r_id: str
    rel_type: str
    target: str
    target_mode: Optional[str] = None

    @property
    def is_external(self) -> bool:
        return self.target_mode == EXTERNAL

    @property
    def is_image(self) -> bool:
        return "image" in self.rel_type


def parse_relationships(data: Optional[bytes], part: str = "<rels>") -> list[Relationship]:
    """
    Parse a .rels part. An absent part (None) yields no relationships.

    Raises MalformedXml if the part exists but cannot be parsed.
    """
    if data is None:
        return []
    root = parse_part(data, part)
    rels = []
    for rel in root.iter(f"{{{PACKAGE_REL_NS}}}Relationship"):
        rels.append(Relationship(
            r_id=rel.get("Id", ""),
            rel_type=rel.get("Type", ""),
            target=rel.get("Target", ""),
            target_mode=rel.get("TargetMode"),
        ))
    return rels


def filter_by_type(rels: Iterable[Relationship],
                   predicate: Callable[[str], bool]) -> list[Relationship]:
    """Keep relationships whose type satisfies the predicate."""
    return [rel for rel in rels if predicate(rel.rel_type)]


def serialize_relationships(rels: Iterable[Relationship]) -> bytes:
    """
    Write a .rels part. With no relationships left the <Relationships> root is
    written without children, which is still a valid relationship part.
    """
    root = etree.Element(f"{{{PACKAGE_REL_NS}}}Relationships", nsmap={None: PACKAGE_REL_NS})
    for rel in rels:
        elem = etree.SubElement(root, f"{{{PACKAGE_REL_NS}}}Relationship")
        elem.set("Id", rel.r_id)
        elem.set("Type", rel.rel_type)
        elem.set("Target", rel.target)
        if rel.target_mode:
            elem.set("TargetMode", rel.target_mode)
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def rels_part_for(source_part: str) -> str:
    """word/document.xml -> word/_rels/document.xml.rels"""
    folder, name = posixpath.split(source_part)
    return posixpath.join(folder, "_rels", f"{name}.rels")


def source_part_for(rels_part: str) -> str:
    """word/_rels/document.xml.rels -> word/document.xml; _rels/.rels -> ''"""
    folder, name = posixpath.split(rels_part)
    if name.endswith(".rels"):
        name = name[:-len(".rels")]
    if posixpath.basename(folder) == "_rels":
        folder = posixpath.dirname(folder)
    return posixpath.join(folder, name) if name else folder


def resolve_target(source_part: str, target: str) -> str:
    """
    Resolve a relationship target to an archive path, relative to its source part.
    Targets are URIs, so percent-escapes are decoded first.
    """
    target = unquote(target)
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base = posixpath.dirname(source_part)
    return posixpath.normpath(posixpath.join(base, target))


def iter_relationship_parts(package) -> list[str]:
    return [name for name in package.names() if name.endswith(".rels")]


def referenced_targets(package, predicate: Optional[Callable[[Relationship], bool]] = None) -> set[str]:
    """
    Archive paths targeted by internal relationships anywhere in the package.

    Targets are resolved against their owning part. A target written with a
    leading "../" that does not resolve to an existing entry is also recorded
    relative to the owning part's own folder, matching how some producers
    write media links.

    Raises MalformedXml if any relationship part cannot be parsed.
    """
    targets = set()
    for rels_part in iter_relationship_parts(package):
        source = source_part_for(rels_part)
        for rel in parse_relationships(package.get(rels_part), rels_part):
            if rel.is_external or not rel.target:
                continue
            if predicate is not None and not predicate(rel):
                continue
            resolved = resolve_target(source, rel.target)
            targets.add(resolved)
            if rel.target.startswith("../") and resolved not in package:
                stripped = rel.target
                while stripped.startswith("../"):
                    stripped = stripped[3:]
                targets.add(resolve_target(source, stripped))
    return targets
