"""Namespace-agnostic navigation over ElementTree documents.

Preservica responses mix the EntityAPI default namespace with ``xip:``
prefixed elements, and the same element may appear under either. Every lookup
here matches on the local tag name only.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterator

from preservica_client.errors import PreservicaClientError


def parse_xml(text: str | bytes) -> ET.Element:
    """Parse a response body. Malformed XML raises a decode error."""
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise PreservicaClientError.decode(f"Unable to parse XML response: {exc}") from exc


def local_name(tag: str) -> str:
    """``'{http://preservica.com/XIP/v7.0}Title'`` → ``'Title'``."""
    return tag.rsplit("}", 1)[-1]


def namespace(tag: str) -> str | None:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def iter_children(elem: ET.Element) -> Iterator[ET.Element]:
    # Comments and processing instructions have non-string tags.
    return (c for c in elem if isinstance(c.tag, str))


def children(elem: ET.Element, name: str, *, ignore_case: bool = False) -> list[ET.Element]:
    if ignore_case:
        lowered = name.lower()
        return [c for c in iter_children(elem) if local_name(c.tag).lower() == lowered]
    return [c for c in iter_children(elem) if local_name(c.tag) == name]


def child(elem: ET.Element, name: str, *, ignore_case: bool = False) -> ET.Element | None:
    found = children(elem, name, ignore_case=ignore_case)
    return found[0] if found else None


def find_all(elem: ET.Element, *path: str) -> list[ET.Element]:
    """Descend ``path`` one level per name, collecting every match."""
    current = [elem]
    for name in path:
        current = [c for parent in current for c in children(parent, name)]
    return current


def text_of(elem: ET.Element) -> str:
    return "".join(elem.itertext()).strip()


def first_text(elem: ET.Element, *path: str) -> str | None:
    """Text of the first element at ``path``, or ``None`` if there is none."""
    found = find_all(elem, *path)
    return text_of(found[0]) if found else None


def texts(elem: ET.Element, *path: str) -> list[str]:
    return [text_of(e) for e in find_all(elem, *path)]


def attribute(elem: ET.Element, name: str) -> str | None:
    value = elem.get(name)
    if value is not None:
        return value
    for key, attr_value in elem.attrib.items():
        if local_name(key) == name:
            return attr_value
    return None


def to_string(elem: ET.Element) -> str:
    return ET.tostring(elem, encoding="unicode")
