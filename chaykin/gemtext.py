"""
Gemtext rendering for graph descriptions.

Every function in this module is a pure string transformation. The same
subject, properties, layout and link mode always produce identical output.

Two layouts are supported:

    expanded  - one line per (predicate, object) pair
    condensed - one "## predicate" section per predicate, listing its objects

In proxy mode, links to web resources are rewritten to point back at this
server so that following them performs another proxy fetch.
"""
from __future__ import annotations

import string
import typing
from collections import defaultdict

from .store import PropertyList

DEFAULT_ROOT = "gemini://localhost/"

LINK_PREFIXES = ("gemini://", "http://", "https://")
WEB_PREFIXES = ("http://", "https://")

SAFE_BYTES = frozenset((string.ascii_letters + string.digits).encode("ascii"))


def is_link(value: str) -> bool:
    """
    Prefix test only, anything that looks like the start of a URL counts.
    """
    return value.startswith(LINK_PREFIXES)


def quote_all(value: str) -> str:
    """
    Percent-encode every byte of the UTF-8 value that isn't an ASCII letter
    or digit.

    This is stricter than urllib.parse.quote(), which leaves "-._~" alone.
    """
    return "".join(
        chr(byte) if byte in SAFE_BYTES else f"%{byte:02X}"
        for byte in value.encode("utf-8")
    )


def proxy_url(value: str, root: str = DEFAULT_ROOT) -> str:
    return root + quote_all(value)


def link_destination(value: str, proxy: bool, root: str = DEFAULT_ROOT) -> str:
    if proxy and value.startswith(WEB_PREFIXES):
        return proxy_url(value, root)
    return value


def group_properties(
    properties: PropertyList,
) -> typing.List[typing.Tuple[str, typing.List[str]]]:
    """
    Group objects under their predicate, predicates in lexicographic order.
    """
    grouped: typing.Dict[str, typing.List[str]] = defaultdict(list)
    for predicate, obj in properties:
        grouped[predicate].append(obj)
    return sorted(grouped.items())


def format_expanded(
    properties: PropertyList, proxy: bool = False, root: str = DEFAULT_ROOT
) -> str:
    lines = []
    for predicate, obj in properties:
        if is_link(obj):
            dest = link_destination(obj, proxy, root)
            lines.append(f"=> {dest} {predicate} : {obj}\n")
        else:
            lines.append(f"* {predicate}: {obj}\n")
    return "".join(lines)


def format_condensed(
    properties: PropertyList, proxy: bool = False, root: str = DEFAULT_ROOT
) -> str:
    lines = []
    for predicate, objects in group_properties(properties):
        lines.append(f"## {predicate}\n")
        for obj in objects:
            if not is_link(obj):
                lines.append(f"* {obj}\n")
            elif proxy and obj.startswith(WEB_PREFIXES):
                lines.append(f"=> {proxy_url(obj, root)} {obj}\n")
            else:
                lines.append(f"=> {obj}\n")
        lines.append("\n")
    return "".join(lines)


def format_properties(
    properties: PropertyList,
    condensed: bool = False,
    proxy: bool = False,
    root: str = DEFAULT_ROOT,
) -> str:
    if condensed:
        return format_condensed(properties, proxy, root)
    return format_expanded(properties, proxy, root)


def render_resource(
    iri: str,
    properties: PropertyList,
    condensed: bool = False,
    root: str = DEFAULT_ROOT,
) -> str:
    """
    Page for a subject found in the local graph.
    """
    body = f"# Resource: {iri}\n\n"
    body += format_properties(properties, condensed, proxy=False, root=root)
    body += f"\n=> {root} Home\n"
    return body


def render_proxy(
    url: str,
    properties: PropertyList,
    condensed: bool = False,
    root: str = DEFAULT_ROOT,
) -> str:
    """
    Page for a subject described by a fetched remote document.
    """
    body = f"# Proxy: {url}\n\n"
    body += format_properties(properties, condensed, proxy=True, root=root)
    return body


def render_not_found(iri: str) -> str:
    return f"# Not Found\r\n\r\nResource not found in graph:\n=> {iri}\n"


def render_debug(iri: str, triple_count: int, subjects: typing.Iterable[str]) -> str:
    """
    Shown when a fetched document parsed fine but says nothing about the
    requested IRI, to help figure out which subjects it does describe.
    """
    body = (
        f"# No Data Found for {iri}\r\n\r\n"
        f"Loaded {triple_count} triples.\n\n"
        f"## Available Subjects:\n"
    )
    for subject in subjects:
        body += f"* {subject}\n"
    return body


def render_error(title: str, message: str) -> str:
    return f"# {title}\r\n\r\n{message}\n"
