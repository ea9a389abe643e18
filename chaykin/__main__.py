"""
Main entry point for running ``chaykin`` from the command line.

This will load the seed Turtle file and launch a gemini server running the
LinkedDataApplication on top of it.
"""
# Black does not do a good job of formatting argparse code, IMHO.
# fmt: off
import argparse
import sys

from .__version__ import __version__
from .app.linkeddata import LinkedDataApplication
from .errors import ParseError
from .proxy import HTTPFetcher
from .request import CanonicalizationPolicy
from .server import GeminiServer
from .store import TripleStore

if sys.version_info < (3, 8):
    sys.exit("Fatal Error: chaykin requires Python 3.8+")


def alias_pair(value):
    alias, sep, canonical = value.partition("=")
    if not sep or not alias or not canonical:
        raise argparse.ArgumentTypeError(f"expected FROM=TO, got {value!r}")
    return alias, canonical


# noinspection PyTypeChecker
parser = argparse.ArgumentParser(
    prog="chaykin",
    description="A Gemini Linked Data Server",
    formatter_class=argparse.ArgumentDefaultsHelpFormatter,
)
parser.add_argument(
    "-V", "--version",
    action="version",
    version="chaykin " + __version__
)
group = parser.add_argument_group("server configuration")
group.add_argument(
    "--host",
    help="Server address to bind to",
    default="127.0.0.1"
)
group.add_argument(
    "--port",
    help="Server port to bind to",
    type=int,
    default=1965
)
group.add_argument(
    "--hostname",
    help="Server hostname",
    default="localhost"
)
group.add_argument(
    "--tls-certfile",
    dest="certfile",
    help="Server TLS certificate file",
    metavar="FILE",
)
group.add_argument(
    "--tls-keyfile",
    dest="keyfile",
    help="Server TLS private key file",
    metavar="FILE",
)
group = parser.add_argument_group("graph configuration")
group.add_argument(
    "--data",
    help="Turtle file to load as the local graph",
    default="sample_data.ttl",
    metavar="FILE",
)
group.add_argument(
    "--alias",
    help="Host alias rewritten in requested IRIs before a local lookup, "
         "may be given more than once (default: 127.0.0.1=localhost)",
    type=alias_pair,
    action="append",
    metavar="FROM=TO",
    dest="aliases",
)
group.add_argument(
    "--fetch-timeout",
    help="Seconds to wait for a proxied document, 0 waits forever",
    type=float,
    default=30.0,
    metavar="SECONDS",
)


def build_root_url(hostname, port):
    if port == 1965:
        return f"gemini://{hostname}/"
    return f"gemini://{hostname}:{port}/"


def load_store(path):
    """
    Load the seed graph. A missing or broken file leaves the graph empty.
    """
    store = TripleStore()
    try:
        store.load_file(path)
    except (OSError, ParseError) as e:
        print(f"Warning: failed to load {path}: {e}", file=sys.stderr)
    print(f"Loaded {store.count()} triples.", file=sys.stderr)
    return store


def main():
    args = parser.parse_args()
    policy = CanonicalizationPolicy(
        aliases=dict(args.aliases or [("127.0.0.1", "localhost")]),
        default_port=args.port,
    )
    app = LinkedDataApplication(
        store=load_store(args.data),
        policy=policy,
        fetcher=HTTPFetcher(timeout=args.fetch_timeout),
        root=build_root_url(args.hostname, args.port),
    )
    server = GeminiServer(
        app=app,
        host=args.host,
        port=args.port,
        hostname=args.hostname,
        certfile=args.certfile,
        keyfile=args.keyfile,
    )
    server.run()


if __name__ == "__main__":
    main()
