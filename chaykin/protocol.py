from __future__ import annotations

import time
import traceback
import typing

from twisted.internet.address import IPv4Address, IPv6Address
from twisted.internet.defer import Deferred, ensureDeferred
from twisted.internet.task import deferLater
from twisted.protocols.basic import LineOnlyReceiver

from .__version__ import __version__
from .app.base import ApplicationCallable, Status

if typing.TYPE_CHECKING:
    from .server import GeminiServer


class GeminiProtocol(LineOnlyReceiver):
    """
    Handle a single Gemini Protocol TCP request.

    One instance is built per connection. It reads the request line, hands
    it to the application together with a callback for the status line, and
    writes whatever the application yields to the socket before closing the
    connection. The application may yield Deferreds, which are awaited so
    that slow work like fetching a remote document never blocks other
    connections.
    """

    TIMESTAMP_FORMAT = "%d/%b/%Y:%H:%M:%S %z"

    # The request line is bounded by the gemini protocol, anything longer
    # than this is dropped by LineOnlyReceiver before it reaches us.
    MAX_LENGTH = 2048
    MAX_URL_LENGTH = 1024

    client_addr: typing.Union[IPv4Address, IPv6Address]
    connected_timestamp: time.struct_time
    request: bytes
    url: str
    status: int
    meta: str
    response_buffer: str
    response_size: int

    def __init__(self, server: GeminiServer, app: ApplicationCallable):
        self.server = server
        self.app = app

    def connectionMade(self):
        """
        This is invoked by twisted after the connection is first established.
        """
        self.connected_timestamp = time.localtime()
        self.response_size = 0
        self.response_buffer = ""
        self.client_addr = self.transport.getPeer()

    def lineReceived(self, line):
        """
        This method is invoked by LineOnlyReceiver for every incoming line.
        """
        self.request = line
        return ensureDeferred(self._handle_request_noblock())

    async def _handle_request_noblock(self):
        """
        Handle the gemini request and write the raw response to the socket.

        The application is a callable returning an iterable. Both the call
        itself and every item of the iterable may be a Deferred, in which case
        it is awaited and the event loop is free to serve other connections
        in the meantime.
        """
        try:
            self.parse_header()
        except Exception:
            # Malformed request, throw it away and exit immediately
            self.server.log_message(traceback.format_exc())
            self.write_status(Status.BAD_REQUEST, "Malformed request")
            self.flush_status()
            self.transport.loseConnection()
            return

        if not self.url:
            # Nothing to look up, hang up without a response
            self.transport.loseConnection()
            return

        try:
            environ = self.build_environ()
            response_generator = self.app(environ, self.write_status)
            if isinstance(response_generator, Deferred):
                response_generator = await response_generator
            else:
                # Yield control of the event loop
                await deferLater(self.server.reactor, 0)

            for data in response_generator:
                if isinstance(data, Deferred):
                    data = await data
                self.write_body(data)

        except Exception:
            self.server.log_message(
                f"Error handling connection from {self.client_addr.host}:\n"
                + traceback.format_exc()
            )
        else:
            self.flush_status()
            self.log_request()
        finally:
            self.transport.loseConnection()

    def build_environ(self) -> typing.Dict[str, typing.Any]:
        """
        Construct a dictionary that will be passed to the application handler.
        """
        environ = {
            "GEMINI_URL": self.url,
            "HOSTNAME": self.server.hostname,
            "REMOTE_ADDR": self.client_addr.host,
            "SERVER_NAME": self.server.hostname,
            "SERVER_PORT": self.server.port,
            "SERVER_PROTOCOL": "GEMINI",
            "SERVER_SOFTWARE": f"chaykin/{__version__}",
        }
        if self.server.use_tls:
            conn = self.transport.getHandle()
            environ["TLS_CIPHER"] = conn.get_cipher_name()
            environ["TLS_VERSION"] = conn.get_protocol_version_name()
        return environ

    def parse_header(self) -> None:
        """
        Parse the gemini header line.

        The request is a single UTF-8 line formatted as: <URL>\r\n

        Invalid UTF-8 is replaced rather than rejected, the lookup will simply
        not match anything.
        """
        if len(self.request) > self.MAX_URL_LENGTH:
            raise ValueError(f"URL exceeds max length of {self.MAX_URL_LENGTH} bytes")

        self.url = self.request.decode(errors="replace").strip()

    def write_status(self, status: int, meta: str) -> None:
        """
        Write the gemini status line to an internal buffer.

        The status line is a single UTF-8 line formatted as:
            <code> <meta>\r\n

        The status is not written immediately, it's added to an internal buffer
        that must be flushed. This is done so that the status can be updated as
        long as no other data has been written to the stream yet.
        """
        self.status = status
        self.meta = meta
        self.response_buffer = f"{status} {meta}\r\n"

    def write_body(self, data: typing.Union[str, bytes]) -> None:
        """
        Write bytes to the gemini response body.
        """
        if isinstance(data, str):
            data = data.encode()

        self.flush_status()
        self.response_size += len(data)
        self.transport.write(data)

    def flush_status(self) -> None:
        """
        Flush the status line from the internal buffer to the socket stream.
        """
        if self.response_buffer and not self.response_size:
            data = self.response_buffer.encode()
            self.response_size += len(data)
            self.transport.write(data)
        self.response_buffer = ""

    def log_request(self) -> None:
        """
        Log a gemini request using a format derived from the Common Log Format.
        """
        try:
            message = '{} [{}] "{}" {} {} {}'.format(
                self.client_addr.host,
                time.strftime(self.TIMESTAMP_FORMAT, self.connected_timestamp),
                self.url,
                self.status,
                self.meta,
                self.response_size,
            )
        except AttributeError:
            # The connection ended before we got far enough to log anything
            pass
        else:
            self.server.log_access(message)
