"""
DocScrub XML Codec Module

Parses package parts into lxml trees and serializes them back.

Qualified names are written the way they appear in the markup ("w:pStyle")
and expanded through NAMESPACES, so callers never build Clark names by hand.
Repeatable children always come back as lists.
"""

from typing import Callable, Optional

from lxml import etree

from errors import MalformedXml

# Namespaces
NAMESPACES = {
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
    "ct": "http://schemas.openxmlformats.org/package/2006/content-types",
}


def qn(name: str) -> str:
    """Expand "w:val" into lxml's "{namespace}val" form."""
    if ":" not in name:
        return name
    prefix, local = name.split(":", 1)
    return f"{{{NAMESPACES[prefix]}}}{local}"


def _parser() -> etree.XMLParser:
    return etree.XMLParser(remove_blank_text=False, resolve_entities=False, huge_tree=True)


def parse_part(data: bytes, part: str = "<xml>") -> etree._Element:
    """Parse part bytes. Raises MalformedXml on unparseable input."""
    try:
        return etree.fromstring(data, _parser())
    except etree.XMLSyntaxError as e:
        raise MalformedXml(part, str(e)) from e


def serialize_part(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def load_part(package, part: str) -> Optional[etree._Element]:
    """Parse a named part of a package, or return None if it is absent."""
    data = package.get(part)
    if data is None:
        return None
    return parse_part(data, part)


def store_part(package, part: str, root: etree._Element):
    package.put(part, serialize_part(root))


def find_all(root: etree._Element, predicate: Callable[[etree._Element], bool]) -> list[etree._Element]:
    """Every element in the tree (root included) matching the predicate."""
    return [elem for elem in root.iter(etree.Element) if predicate(elem)]


def has_name(*names: str) -> Callable[[etree._Element], bool]:
    """Predicate matching elements named by any of the qualified names."""
    tags = {qn(name) for name in names}
    return lambda elem: elem.tag in tags


def children_of(node: etree._Element, name: Optional[str] = None) -> list[etree._Element]:
    """Element children, optionally restricted to one qualified name."""
    if name is None:
        return [child for child in node if isinstance(child.tag, str)]
    return node.findall(qn(name))


def child_value(node: etree._Element, name: str, attr: str = "w:val") -> Optional[str]:
    """Attribute value of the first child with the given name, if any."""
    child = node.find(qn(name))
    if child is None:
        return None
    return child.get(qn(attr))


def remove_element(elem: etree._Element) -> bool:
    """Detach an element, keeping any tail text in place."""
    parent = elem.getparent()
    if parent is None:
        return False
    if elem.tail:
        prev = elem.getprevious()
        if prev is not None:
            prev.tail = (prev.tail or "") + elem.tail
        else:
            parent.text = (parent.text or "") + elem.tail
    parent.remove(elem)
    return True
