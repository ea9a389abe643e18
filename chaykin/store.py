from __future__ import annotations

import typing

from pyoxigraph import BlankNode, NamedNode, RdfFormat, parse

from .errors import ParseError

Triple = typing.Tuple[str, str, str]
PropertyList = typing.List[typing.Tuple[str, str]]


def term_to_str(term: typing.Any) -> str:
    """
    Flatten a parsed term into the plain string form kept by the store.

    IRIs and blank nodes become their bare identifier. Literals keep their
    N-Triples form so that quoting, language tags and datatypes survive,
    e.g. '"Alice"@en' or '"42"^^<http://www.w3.org/2001/XMLSchema#integer>'.
    """
    if isinstance(term, (NamedNode, BlankNode)):
        return term.value
    return str(term)


class TripleStore:
    """
    An ordered, append-only collection of (subject, predicate, object) strings.

    The seed store is filled once at startup and then handed to the
    application, which only ever reads from it. Proxy requests build their
    own short-lived instance from the fetched document.

    Lookups are a linear scan over every triple. The graphs this server is
    meant for are small, and the scan keeps the result order identical to
    the order the triples were loaded in.
    """

    triples: typing.Tuple[Triple, ...]

    def __init__(self, triples: typing.Iterable[Triple] = ()):
        self.triples = tuple(triples)

    def __len__(self) -> int:
        return len(self.triples)

    def __iter__(self) -> typing.Iterator[Triple]:
        return iter(self.triples)

    def load(self, text: str, base: typing.Optional[str] = None) -> None:
        """
        Parse a Turtle document and append all of its triples.

        Triples are kept in document order, and a statement repeated in the
        document is kept twice.

        Either every triple from the document is added or, if the document
        is malformed, none of them are and ParseError is raised.
        """
        try:
            parsed = [
                (term_to_str(t.subject), term_to_str(t.predicate), term_to_str(t.object))
                for t in parse(text.encode("utf-8"), format=RdfFormat.TURTLE, base_iri=base)
            ]
        except Exception as e:
            raise ParseError(str(e)) from e

        self.triples = self.triples + tuple(parsed)

    def load_file(self, path: str) -> None:
        with open(path, encoding="utf-8") as fp:
            text = fp.read()
        self.load(text)

    def count(self) -> int:
        return len(self.triples)

    def describe(self, subject: str) -> PropertyList:
        """
        Return every (predicate, object) pair recorded for the subject.

        The subject must match exactly, no IRI normalization happens here.
        """
        return [(p, o) for s, p, o in self.triples if s == subject]

    def all_subjects(self) -> typing.List[str]:
        return sorted({s for s, _, _ in self.triples})
