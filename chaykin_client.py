#!/usr/bin/env python3
"""
A very basic gemini client for browsing a chaykin server from a terminal.

    chaykin-client gemini://localhost/alice
    chaykin-client "gemini://localhost/alice?condensed=true"
    chaykin-client https://example.org/person --proxy
"""
import argparse
import socket
import ssl
import sys
import urllib.parse

context = ssl.create_default_context()
context.check_hostname = False
context.verify_mode = ssl.CERT_NONE


def build_proxy_url(target, host="localhost", port=1965):
    """
    Wrap a web IRI so that the server fetches and describes it.
    """
    authority = host if port == 1965 else f"{host}:{port}"
    return f"gemini://{authority}/{urllib.parse.quote(target, safe='')}"


def fetch(url, host=None, port=None):
    parsed_url = urllib.parse.urlparse(url)
    if not parsed_url.scheme:
        parsed_url = urllib.parse.urlparse(f"gemini://{url}")

    host = host or parsed_url.hostname
    port = port or parsed_url.port or 1965

    with socket.create_connection((host, port)) as sock:
        with context.wrap_socket(sock) as ssock:
            ssock.sendall((url + "\r\n").encode())
            fp = ssock.makefile("rb", buffering=0)
            data = fp.read(1024)
            while data:
                sys.stdout.buffer.write(data)
                sys.stdout.buffer.flush()
                data = fp.read(1024)


def run_client():
    parser = argparse.ArgumentParser(description="A simple gemini client")
    parser.add_argument("url")
    parser.add_argument("--host", help="Server host", default=None)
    parser.add_argument("--port", help="Server port", type=int, default=None)
    parser.add_argument(
        "--proxy",
        action="store_true",
        help="Treat the URL as a web IRI and ask the server to proxy it",
    )
    args = parser.parse_args()

    url = args.url
    if args.proxy:
        url = build_proxy_url(url, args.host or "localhost", args.port or 1965)

    fetch(url, args.host, args.port)


if __name__ == "__main__":
    run_client()
