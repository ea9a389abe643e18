# ruff: noqa: F401
from .__version__ import __version__
from .app.base import Response, Status
from .app.linkeddata import LinkedDataApplication
from .errors import ChaykinError, FetchError, NetworkError, ParseError
from .protocol import GeminiProtocol
from .proxy import HTTPFetcher, ProxyFetcher
from .request import CanonicalizationPolicy, LookupRequest, classify
from .server import GeminiServer
from .store import TripleStore

__title__ = "Chaykin Gemini Linked Data Server"
__license__ = "Floodgap Free Software License"
__copyright__ = "(c) 2020 Michael Lazar, (c) 2026 the Chaykin contributors"
