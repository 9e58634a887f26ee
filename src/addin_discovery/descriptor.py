"""Static extraction of references, target frameworks and the icon URL from
``.csproj`` build descriptors.

Two descriptor generations are read side by side:

* SDK-style projects: ``<PackageReference Include="Cake.Core" Version="0.28.0"
  PrivateAssets="All" />`` and ``<TargetFramework(s)>``.
* Legacy MSBuild 2003 projects: ``<Reference Include="Cake.Core, Version=0.26.0.0,
  Culture=neutral">`` with an optional ``<Private>True</Private>`` child and
  ``<TargetFrameworkVersion>``.

Parsing is best effort: a document that is not XML yields an empty
:class:`DescriptorInfo`.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from addin_discovery.models import Reference
from addin_discovery.versioning import format_version, min_version

logger = logging.getLogger(__name__)

MSBUILD_2003_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _namespace(tag: str) -> str:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else ""


class DocumentQuery:
    """Name-based lookups over an XML document, independent of namespaces.

    Legacy descriptors put every element in the MSBuild 2003 namespace while
    SDK-style ones use none; callers ask for elements and attributes by local
    name and may restrict a lookup to a namespace.
    """

    def __init__(self, root: ET.Element | None) -> None:
        self._root = root

    @classmethod
    def parse(cls, text: str | bytes) -> DocumentQuery:
        if isinstance(text, bytes):
            text = text.decode("utf-8-sig", errors="replace")
        text = text.lstrip("\ufeff").strip()
        if not text:
            return cls(None)
        try:
            return cls(ET.fromstring(text))
        except ET.ParseError as exc:
            logger.debug("Descriptor is not well-formed XML: %s", exc)
            return cls(None)

    @property
    def is_empty(self) -> bool:
        return self._root is None

    def elements(self, name: str, *, namespace: str | None = None) -> Iterator[ET.Element]:
        if self._root is None:
            return
        for element in self._root.iter():
            if not isinstance(element.tag, str) or _local_name(element.tag) != name:
                continue
            if namespace is not None and _namespace(element.tag) != namespace:
                continue
            yield element

    @staticmethod
    def attribute(element: ET.Element, name: str) -> str | None:
        for key, value in element.attrib.items():
            if _local_name(key) == name:
                return value
        return None

    @staticmethod
    def child_text(element: ET.Element, name: str) -> str | None:
        for child in element:
            if isinstance(child.tag, str) and _local_name(child.tag) == name:
                return (child.text or "").strip()
        return None

    @staticmethod
    def text(element: ET.Element) -> str:
        return (element.text or "").strip()


@dataclass
class DescriptorInfo:
    references: list[Reference] = field(default_factory=list)
    target_platforms: list[str] = field(default_factory=list)
    icon_url: str | None = None


def _extract_between(start_mark: str, end_mark: str, content: str) -> str:
    start = content.lower().find(start_mark.lower())
    if start == -1:
        return ""
    start += len(start_mark)
    end = content.find(end_mark, start)
    if end == -1:
        end = len(content)
    return content[start:end].strip()


def _is_all(value: str | None) -> bool:
    return value is not None and value.strip().lower() == "all"


def _package_references(query: DocumentQuery) -> Iterator[Reference]:
    for element in query.elements("PackageReference"):
        package_id = query.attribute(element, "Include") or query.attribute(element, "Update")
        if not package_id:
            continue
        version = query.attribute(element, "Version")
        if version is None:
            version = query.child_text(element, "Version") or ""
        is_private = _is_all(query.attribute(element, "PrivateAssets"))
        child_private = query.child_text(element, "PrivateAssets")
        if child_private is not None:
            is_private = _is_all(child_private)
        yield Reference(package_id.strip(), format_version(version), is_private)


def _legacy_references(query: DocumentQuery) -> Iterator[Reference]:
    for element in query.elements("Reference", namespace=MSBUILD_2003_NAMESPACE):
        info = query.attribute(element, "Include")
        if not info:
            continue
        private = query.child_text(element, "Private")
        is_private = private is not None and private.lower() == "true"
        comma = info.find(",")
        if comma > 0:
            package_id = info[:comma].strip()
            version = _extract_between("Version=", ",", info)
        else:
            package_id, version = info.strip(), ""
        yield Reference(package_id, format_version(version), is_private)


def _target_platforms(query: DocumentQuery) -> Iterator[str]:
    for element in query.elements("TargetFramework"):
        value = query.text(element)
        if value:
            yield value
    for element in query.elements("TargetFrameworks"):
        for value in query.text(element).split(";"):
            if value.strip():
                yield value.strip()
    for element in query.elements("TargetFrameworkVersion", namespace=MSBUILD_2003_NAMESPACE):
        value = query.text(element)
        if value:
            yield value


def parse_descriptor(text: str | bytes) -> DescriptorInfo:
    query = DocumentQuery.parse(text)
    if query.is_empty:
        return DescriptorInfo()
    icon_url = next((query.text(e) for e in query.elements("PackageIconUrl") if query.text(e)), None)
    return DescriptorInfo(
        references=[*_package_references(query), *_legacy_references(query)],
        target_platforms=list(_target_platforms(query)),
        icon_url=icon_url,
    )


def merge_references(references: Iterable[Reference]) -> list[Reference]:
    """One reference per package id: lowest version, private only if every occurrence is."""
    grouped: dict[str, list[Reference]] = {}
    for reference in references:
        grouped.setdefault(reference.id, []).append(reference)
    return [
        Reference(
            package_id,
            min_version([r.version for r in group]),
            all(r.is_private for r in group),
        )
        for package_id, group in grouped.items()
    ]


def merge_platforms(platforms: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for platform in platforms:
        seen.setdefault(platform, None)
    return list(seen)
