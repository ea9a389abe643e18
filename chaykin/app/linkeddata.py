from __future__ import annotations

import sys
import typing

from twisted.internet.defer import Deferred, ensureDeferred

from .. import gemtext
from ..proxy import Fetcher, HTTPFetcher, ProxyFetcher
from ..request import CanonicalizationPolicy, LookupRequest, classify
from ..store import TripleStore
from .base import ApplicationResponse, EnvironDict, Response, Status, WriteStatusCallable


class LinkedDataApplication:
    """
    Serve the description of RDF subjects as gemtext pages.

    A request is either answered from the seed store, which is shared by
    every connection and never modified after startup, or, when the path
    is itself an http(s) URL, by fetching that URL and describing it from
    the returned Turtle document.

        store = TripleStore()
        store.load_file("sample_data.ttl")
        app = LinkedDataApplication(store)

    The ``root`` URL is used for the "Home" link and as the prefix of
    rewritten proxy links, it should point back at this server.
    """

    mimetype = "text/gemini"

    def __init__(
        self,
        store: TripleStore,
        policy: typing.Optional[CanonicalizationPolicy] = None,
        fetcher: typing.Optional[Fetcher] = None,
        root: str = gemtext.DEFAULT_ROOT,
    ):
        self.store = store
        self.policy = policy or CanonicalizationPolicy()
        self.root = root
        self.proxy = ProxyFetcher(
            fetcher or HTTPFetcher(), root, log_message=self.log_message
        )

    def log_message(self, message: str) -> None:
        print(message, file=sys.stderr)

    def __call__(
        self, environ: EnvironDict, send_status: WriteStatusCallable
    ) -> ApplicationResponse:
        request = classify(typing.cast(str, environ["GEMINI_URL"]), self.policy)
        response = self.handle(request)
        send_status(response.status, response.meta)

        if isinstance(response.body, (bytes, str, Deferred)):
            yield response.body
        elif response.body:
            yield from response.body

    def handle(self, request: LookupRequest) -> Response:
        if request.proxy:
            body = ensureDeferred(self.proxy.describe(request.target, request.condensed))
            return Response(Status.SUCCESS, self.mimetype, body)
        return Response(Status.SUCCESS, self.mimetype, self.lookup(request))

    def lookup(self, request: LookupRequest) -> str:
        """
        Describe a subject from the seed store.
        """
        properties = self.store.describe(request.target)
        if not properties:
            return gemtext.render_not_found(request.target)
        return gemtext.render_resource(
            request.target, properties, request.condensed, self.root
        )
