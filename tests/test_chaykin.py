import os
import socket
import ssl
import time
import urllib.parse
from threading import Thread
from unittest import TestCase

import pytest
from twisted.internet import reactor
from twisted.web import resource
from twisted.web.server import NOT_DONE_YET, Site

from chaykin import GeminiServer, HTTPFetcher, LinkedDataApplication, TripleStore


class GeminiTestServer(GeminiServer):
    real_port: int

    def on_bind_interface(self, port):
        """
        Capture the port number that the test server actually binds to.
        """
        sock_ip, sock_port, *_ = port.socket.getsockname()
        self.real_port = sock_port

    def log_access(self, message: str) -> None:
        """Suppress logging"""

    def log_message(self, message: str) -> None:
        """Suppress logging"""


class QuietApplication(LinkedDataApplication):
    def log_message(self, message: str) -> None:
        """Suppress logging"""


class TurtleDocument(resource.Resource):
    """
    Serve a Turtle document whose IRIs point back at this web server.
    """

    isLeaf = True

    def __init__(self, template: str, code: int = 200):
        super().__init__()
        self.template = template
        self.code = code

    def render_GET(self, request):
        request.setResponseCode(self.code)
        request.setHeader(b"content-type", b"text/turtle")
        return self.template.format(port=request.getHost().port).encode()


ALICE_TTL = """
@prefix schema: <http://schema.org/> .
<http://127.0.0.1:{port}/alice> schema:name "Alice" ;
    schema:knows <http://127.0.0.1:{port}/bob> ;
    schema:url <gemini://example.org/alice> .
"""

SECURE_TTL = """
@prefix schema: <http://schema.org/> .
<https://127.0.0.1:{port}/secure> schema:name "Carol" .
"""

OTHER_TTL = """
@prefix schema: <http://schema.org/> .
<http://127.0.0.1:{port}/dave> schema:name "Dave" .
<http://127.0.0.1:{port}/erin> schema:name "Erin" .
"""

BROKEN_TTL = "<http://127.0.0.1:{port}/broken> this is not turtle"


class StalledDocument(resource.Resource):
    """
    Send the headers and the start of a body, then never finish.
    """

    isLeaf = True

    def render_GET(self, request):
        request.setHeader(b"content-type", b"text/turtle")
        request.setHeader(b"content-length", b"100")
        request.write(b"<a> <b> ")
        return NOT_DONE_YET


web_root = resource.Resource()
web_root.putChild(b"alice", TurtleDocument(ALICE_TTL))
web_root.putChild(b"secure", TurtleDocument(SECURE_TTL))
web_root.putChild(b"other", TurtleDocument(OTHER_TTL))
web_root.putChild(b"broken", TurtleDocument(BROKEN_TTL))
web_root.putChild(b"gone", TurtleDocument("", code=410))
web_root.putChild(b"stalled", StalledDocument())


FETCH_TIMEOUT = 1.0

store = TripleStore()
store.load_file(os.path.join(os.path.dirname(__file__), "data", "graph.ttl"))
app = QuietApplication(store, fetcher=HTTPFetcher(timeout=FETCH_TIMEOUT))

SERVERS = {
    "basic": GeminiTestServer(app=app, port=0),
}
WEB_PORTS = {}


@pytest.fixture(scope="session", autouse=True)
def _reactor():
    """
    Setup a twisted reactor thread that will run in the background for
    the entire test suite. The reactor can only be started once
    per-interpreter, so the gemini servers and the web server that the proxy
    tests fetch from are all installed here before it starts.
    """
    for server in SERVERS.values():
        server.initialize()

    port = reactor.listenTCP(0, Site(web_root), interface="127.0.0.1")
    WEB_PORTS["http"] = port.getHost().port

    thread = Thread(target=reactor.run, args=(False,))
    thread.start()
    try:
        yield
    finally:
        reactor.callFromThread(reactor.stop)
        thread.join(timeout=5)


class BaseTestCase(TestCase):
    """
    Spin up a complete chaykin server on a local TCP port and send real gemini
    requests to it, checking the full response from end-to-end.
    """

    server: GeminiTestServer

    def create_context(self):
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    def get_conn_info(self):
        return self.server.host, self.server.real_port

    def request(self, data: str):
        context = self.create_context()
        conn = self.get_conn_info()
        with socket.create_connection(conn) as sock:
            with context.wrap_socket(sock) as ssock:
                ssock.sendall(data.encode(errors="surrogateescape"))
                fp = ssock.makefile("rb")
                return fp.read().decode(errors="surrogateescape")


class LocalLookupTestCase(BaseTestCase):
    server = SERVERS["basic"]

    def test_resource(self):
        resp = self.request("gemini://localhost/alice\r\n")
        assert resp.startswith(
            "20 text/gemini\r\n# Resource: gemini://localhost/alice\n\n"
        )
        assert '* http://schema.org/name: "Alice"\n' in resp
        assert (
            "=> gemini://localhost/bob http://xmlns.com/foaf/0.1/knows"
            " : gemini://localhost/bob\n"
        ) in resp
        assert resp.endswith("\n=> gemini://localhost/ Home\n")

    def test_resource_web_links_are_direct(self):
        resp = self.request("gemini://localhost/alice\r\n")
        assert (
            "=> https://example.org/alice http://xmlns.com/foaf/0.1/homepage"
            " : https://example.org/alice\n"
        ) in resp

    def test_resource_condensed(self):
        resp = self.request("gemini://localhost/alice?condensed=true\r\n")
        assert resp == (
            "20 text/gemini\r\n"
            "# Resource: gemini://localhost/alice\n\n"
            "## http://schema.org/name\n"
            '* "Alice"\n'
            "\n"
            "## http://xmlns.com/foaf/0.1/homepage\n"
            "=> https://example.org/alice\n"
            "\n"
            "## http://xmlns.com/foaf/0.1/knows\n"
            "=> gemini://localhost/bob\n"
            "\n"
            "\n=> gemini://localhost/ Home\n"
        )

    def test_loopback_alias(self):
        resp = self.request("gemini://127.0.0.1:1965/bob\r\n")
        assert resp.startswith("20 text/gemini\r\n# Resource: gemini://localhost/bob\n")
        assert '* http://schema.org/name: "Bob"\n' in resp

    def test_not_found(self):
        resp = self.request("gemini://localhost/nobody\r\n")
        assert resp == (
            "20 text/gemini\r\n"
            "# Not Found\r\n\r\n"
            "Resource not found in graph:\n"
            "=> gemini://localhost/nobody\n"
        )

    def test_empty_request(self):
        resp = self.request("\r\n")
        assert resp == ""

    def test_request_too_long(self):
        resp = self.request("gemini://localhost/" + "a" * 1100 + "\r\n")
        assert resp == "59 Malformed request\r\n"

    def test_non_utf8(self):
        resp = self.request("gemini://localhost/%AE\r\n")
        assert resp.startswith("20 text/gemini\r\n# Not Found")


class ProxyLookupTestCase(BaseTestCase):
    server = SERVERS["basic"]

    def web_url(self, path: str, scheme: str = "http") -> str:
        return f"{scheme}://127.0.0.1:{WEB_PORTS['http']}/{path}"

    def proxy_request(self, target: str, query: str = "") -> str:
        encoded = urllib.parse.quote(target, safe="")
        return self.request(f"gemini://localhost/{encoded}{query}\r\n")

    def test_proxy(self):
        url = self.web_url("alice")
        resp = self.proxy_request(url)
        assert resp.startswith(f"20 text/gemini\r\n# Proxy: {url}\n\n")
        assert '* http://schema.org/name: "Alice"\n' in resp

    def test_proxy_rewrites_web_links(self):
        resp = self.proxy_request(self.web_url("alice"))
        port = WEB_PORTS["http"]
        assert (
            f"=> gemini://localhost/http%3A%2F%2F127%2E0%2E0%2E1%3A{port}%2Fbob"
            f" http://schema.org/knows : http://127.0.0.1:{port}/bob\n"
        ) in resp

    def test_proxy_keeps_gemini_links(self):
        resp = self.proxy_request(self.web_url("alice"))
        assert (
            "=> gemini://example.org/alice http://schema.org/url"
            " : gemini://example.org/alice\n"
        ) in resp

    def test_proxy_condensed(self):
        resp = self.proxy_request(self.web_url("alice"), "?condensed=true")
        assert "## http://schema.org/knows\n" in resp
        assert '## http://schema.org/name\n* "Alice"\n\n' in resp

    def test_proxy_scheme_fallback(self):
        url = self.web_url("secure")
        resp = self.proxy_request(url)
        assert resp.startswith(f"20 text/gemini\r\n# Proxy: {url}\n\n")
        assert '* http://schema.org/name: "Carol"\n' in resp

    def test_proxy_no_data(self):
        url = self.web_url("other")
        resp = self.proxy_request(url)
        assert resp == (
            "20 text/gemini\r\n"
            f"# No Data Found for {url}\r\n\r\n"
            "Loaded 2 triples.\n\n"
            "## Available Subjects:\n"
            f"* {self.web_url('dave')}\n"
            f"* {self.web_url('erin')}\n"
        )

    def test_proxy_parse_error(self):
        resp = self.proxy_request(self.web_url("broken"))
        assert resp.startswith("20 text/gemini\r\n# Error parsing RDF\r\n\r\n")

    def test_proxy_fetch_error(self):
        resp = self.proxy_request(self.web_url("gone"))
        assert resp == "20 text/gemini\r\n# Fetch Error\r\n\r\nHTTP Status: 410 Gone\n"

    def test_proxy_missing_document(self):
        resp = self.proxy_request(self.web_url("missing"))
        assert resp == "20 text/gemini\r\n# Fetch Error\r\n\r\nHTTP Status: 404 Not Found\n"

    def test_proxy_network_error(self):
        resp = self.proxy_request("http://127.0.0.1:1/unreachable")
        assert resp.startswith("20 text/gemini\r\n# Network Error\r\n\r\n")

    def test_proxy_stalled_body_times_out(self):
        start = time.monotonic()
        resp = self.proxy_request(self.web_url("stalled"))
        elapsed = time.monotonic() - start
        assert resp.startswith("20 text/gemini\r\n# Network Error\r\n\r\nTimeoutError")
        assert FETCH_TIMEOUT <= elapsed < FETCH_TIMEOUT + 4


class ServerTestCase(TestCase):
    def test_banner(self):
        server = GeminiTestServer(app=app, port=0, use_tls=False)
        lines = server.banner()
        assert "Server hostname is localhost" in lines
        assert lines[-1] == "TLS is disabled"

    def test_plaintext_factory(self):
        server = GeminiTestServer(app=app, port=0, use_tls=False)
        assert server.build_factory() is server
