from __future__ import annotations

import dataclasses
import typing
from urllib.parse import unquote

PROXY_SCHEMES = ("http://", "https://")


def split_query(url: str) -> typing.Tuple[str, bool]:
    """
    Split the query string off a URL and check it for the condensed flag.

    Any query content other than "condensed=true" is ignored.
    """
    base, sep, query = url.partition("?")
    if not sep:
        return url, False
    return base, "condensed=true" in query


def extract_path(url: str) -> str:
    """
    Return the path of a gemini://host[:port]/path URL, or the text itself
    when it does not start with the gemini scheme.
    """
    if url.startswith("gemini://"):
        authority_and_path = url[len("gemini://") :]
        slash = authority_and_path.find("/")
        if slash == -1:
            return "/"
        return authority_and_path[slash:]
    return url


@dataclasses.dataclass
class CanonicalizationPolicy:
    """
    Rewrites a requested IRI into the form the seed dataset was written with.

    The seed graph uses "gemini://localhost/..." subjects without a port,
    while clients will often connect to the loopback address on the default
    gemini port. Every alias is replaced textually with its canonical host,
    and the ":<default_port>" suffix is removed.
    """

    aliases: typing.Dict[str, str] = dataclasses.field(
        default_factory=lambda: {"127.0.0.1": "localhost"}
    )
    default_port: typing.Optional[int] = 1965

    def canonicalize(self, iri: str) -> str:
        for alias, canonical in self.aliases.items():
            iri = iri.replace(alias, canonical)
        if self.default_port is not None:
            iri = iri.replace(f":{self.default_port}", "")
        return iri


@dataclasses.dataclass
class LookupRequest:
    """
    The outcome of classifying a single request line.

    ``proxy`` requests carry the remote URL to fetch in ``target``, local
    requests carry the canonical subject IRI to look up in the seed store.
    """

    url: str
    path: str
    target: str
    proxy: bool
    condensed: bool = False


def classify(
    url: str, policy: typing.Optional[CanonicalizationPolicy] = None
) -> LookupRequest:
    """
    Decide whether a request is a local lookup or a proxy fetch.

    Proxy detection runs on the percent-decoded path, so that
    "gemini://host/http%3A%2F%2Fexample.org%2F" is recognized. The local
    lookup IRI is derived from the raw request instead, because it has to
    match the IRIs stored in the seed graph byte for byte.
    """
    if policy is None:
        policy = CanonicalizationPolicy()

    decoded = unquote(url, errors="replace")
    base, condensed = split_query(decoded)

    path = extract_path(base)
    if path.startswith("/"):
        path = path[1:]

    if path.startswith(PROXY_SCHEMES):
        return LookupRequest(url, path, path, proxy=True, condensed=condensed)

    raw_base, _ = split_query(url)
    lookup_iri = policy.canonicalize(raw_base)
    return LookupRequest(url, path, lookup_iri, proxy=False, condensed=condensed)
