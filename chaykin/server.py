from __future__ import annotations

import socket
import sys
import typing

from twisted.internet import reactor as _reactor
from twisted.internet.endpoints import TCP4ServerEndpoint
from twisted.internet.protocol import Factory
from twisted.internet.tcp import Port
from twisted.protocols.tls import TLSMemoryBIOFactory

from chaykin.__version__ import __version__
from chaykin.app.base import ApplicationCallable
from chaykin.protocol import GeminiProtocol
from chaykin.tls import GeminiCertificateOptions, generate_ad_hoc_certificate

if sys.stderr.isatty():
    CYAN = "\033[36m\033[1m"
    RESET = "\033[0m"
else:
    CYAN = ""
    RESET = ""


class GeminiServer(Factory):
    """
    Serve a gemini application over TLS on a single TCP interface.

    The application object is shared by every connection, so anything it
    holds (like the seed graph) must be safe to read concurrently. twisted
    runs everything on one thread, which makes read-only data trivially safe.

        server = GeminiServer(LinkedDataApplication(store), port=1965)
        server.run()
    """

    protocol_class = GeminiProtocol

    def __init__(
        self,
        app: ApplicationCallable,
        reactor: typing.Any = _reactor,
        host: str = "127.0.0.1",
        port: int = 1965,
        hostname: str = "localhost",
        certfile: typing.Optional[str] = None,
        keyfile: typing.Optional[str] = None,
        use_tls: bool = True,
    ):
        self.app = app
        self.reactor = reactor
        self.host = host
        self.port = port
        self.hostname = hostname
        self.use_tls = use_tls
        self.certfile, self.keyfile = certfile, keyfile
        if self.use_tls and self.certfile is None:
            self.log_message(f"Generating self-signed certificate for {hostname}...")
            self.certfile, self.keyfile = generate_ad_hoc_certificate(hostname)

    def log_access(self, message: str) -> None:
        """
        One line per handled request, on stdout.
        """
        print(message, file=sys.stdout)

    def log_message(self, message: str) -> None:
        """
        Startup info, warnings and tracebacks, on stderr.
        """
        print(message, file=sys.stderr)

    def buildProtocol(self, addr: typing.Any) -> GeminiProtocol:
        return self.protocol_class(self, self.app)

    def build_factory(self) -> Factory:
        """
        Wrap this factory in TLS unless it has been turned off.
        """
        if not self.use_tls:
            return self

        options = GeminiCertificateOptions(
            certfile=self.certfile,  # type: ignore[arg-type]
            keyfile=self.keyfile,
        )
        return TLSMemoryBIOFactory(options, False, self)

    def on_bind_interface(self, port: Port) -> None:
        sock_ip, sock_port, *_ = port.socket.getsockname()
        if port.addressFamily == socket.AF_INET6:
            sock_ip = f"[{sock_ip}]"
        self.log_message(f"Listening on gemini://{sock_ip}:{sock_port}")

    def initialize(self) -> None:
        """
        Start listening. The reactor must be running for connections to be
        accepted.
        """
        endpoint = TCP4ServerEndpoint(
            self.reactor, self.port, interface=self.host or "0.0.0.0"
        )
        endpoint.listen(self.build_factory()).addCallback(self.on_bind_interface)

    def banner(self) -> typing.List[str]:
        lines = [
            f"{CYAN}Chaykin, linked data over gemini{RESET} v{__version__}",
            f"Server hostname is {self.hostname}",
        ]
        if self.use_tls:
            lines.append(f"TLS Certificate File: {self.certfile}")
            lines.append(f"TLS Private Key File: {self.keyfile}")
        else:
            lines.append("TLS is disabled")
        return lines

    def run(self) -> None:
        """
        Listen and block in the reactor loop until the process is stopped.
        """
        for line in self.banner():
            self.log_message(line)
        self.initialize()
        self.reactor.run()
