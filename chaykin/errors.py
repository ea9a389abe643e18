from twisted.web.http import RESPONSES


class ChaykinError(Exception):
    """
    Base class for failures that are rendered back to the client as a
    gemtext error page instead of breaking the connection.
    """

    title = "Error"


class ParseError(ChaykinError):
    """
    The document was not well-formed Turtle.
    """

    title = "Error parsing RDF"


class NetworkError(ChaykinError):
    """
    The remote URL could not be reached.
    """

    title = "Network Error"


class FetchError(ChaykinError):
    """
    The remote server answered with a non-success HTTP status.
    """

    title = "Fetch Error"

    def __init__(self, status: int):
        self.status = status
        self.phrase = RESPONSES.get(status, b"").decode("ascii")
        super().__init__(f"HTTP Status: {status} {self.phrase}".rstrip())
