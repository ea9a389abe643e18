from __future__ import annotations

import typing

from twisted.internet import reactor as _reactor
from twisted.internet.defer import ensureDeferred
from twisted.web.client import Agent, PartialDownloadError, RedirectAgent, readBody
from twisted.web.http_headers import Headers

from . import gemtext
from .__version__ import __version__
from .errors import ChaykinError, FetchError, NetworkError
from .store import PropertyList, TripleStore


class Fetcher(typing.Protocol):
    async def fetch(self, url: str) -> typing.Tuple[int, str]:
        ...


class HTTPFetcher:
    """
    Download remote documents with twisted's non-blocking HTTP client.

    Redirects are followed. Any failure to get a response at all (DNS,
    refused connection, TLS, timeout) is reported as a NetworkError.
    """

    ACCEPT = "text/turtle, application/x-turtle"
    USER_AGENT = f"chaykin/{__version__}"

    def __init__(self, reactor: typing.Any = _reactor, timeout: float = 30.0):
        self.reactor = reactor
        self.timeout = timeout
        self.agent = RedirectAgent(Agent(reactor))

    async def download(self, url: str) -> typing.Tuple[int, bytes]:
        headers = Headers(
            {
                b"Accept": [self.ACCEPT.encode()],
                b"User-Agent": [self.USER_AGENT.encode()],
            }
        )
        response = await self.agent.request(b"GET", url.encode(), headers)
        try:
            data = await readBody(response)
        except PartialDownloadError as e:
            # Servers without a Content-Length just close the connection
            data = e.response
        return response.code, data

    async def fetch(self, url: str) -> typing.Tuple[int, str]:
        """
        GET the URL and return the status code and the decoded body.

        The timeout covers the whole exchange, headers and body.
        """
        try:
            d = ensureDeferred(self.download(url))
            if self.timeout:
                d.addTimeout(self.timeout, self.reactor)
            code, data = await d
        except Exception as e:
            raise NetworkError(f"{type(e).__name__}: {e}") from e

        return code, data.decode("utf-8", errors="replace")


class ProxyFetcher:
    """
    Render the description of a web IRI by dereferencing it as Turtle.

    Each call builds its own TripleStore from the fetched body. The store
    lives only for the duration of that call.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        root: str = gemtext.DEFAULT_ROOT,
        log_message: typing.Optional[typing.Callable[[str], None]] = None,
    ):
        self.fetcher = fetcher
        self.root = root
        self.log_message = log_message

    @staticmethod
    def swap_scheme(url: str) -> str:
        if url.startswith("https://"):
            return "http://" + url[len("https://") :]
        if url.startswith("http://"):
            return "https://" + url[len("http://") :]
        return url

    async def load(self, url: str) -> TripleStore:
        """
        Fetch the URL and parse the body into a fresh store.

        Raises NetworkError, FetchError or ParseError.
        """
        status, body = await self.fetcher.fetch(url)
        if not 200 <= status < 300:
            raise FetchError(status)

        store = TripleStore()
        store.load(body, base=url)
        return store

    def lookup(self, store: TripleStore, url: str) -> PropertyList:
        properties = store.describe(url)
        if not properties:
            # The document may describe itself under the other scheme
            properties = store.describe(self.swap_scheme(url))
        return properties

    async def describe(self, url: str, condensed: bool = False) -> str:
        if self.log_message:
            self.log_message(f"Proxying request to: {url}")

        try:
            store = await self.load(url)
        except ChaykinError as e:
            return gemtext.render_error(e.title, str(e))

        properties = self.lookup(store, url)
        if not properties:
            return gemtext.render_debug(url, store.count(), store.all_subjects())
        return gemtext.render_proxy(url, properties, condensed, self.root)
