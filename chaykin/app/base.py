from __future__ import annotations

import dataclasses
import typing

from twisted.internet.defer import Deferred

EnvironDict = typing.Dict[str, object]
ResponseType = typing.Union[str, bytes, Deferred]
ApplicationResponse = typing.Iterable[ResponseType]
WriteStatusCallable = typing.Callable[[int, str], None]
ApplicationCallable = typing.Callable[
    [EnvironDict, WriteStatusCallable], ApplicationResponse
]


class Status:
    """
    Gemini response status codes used by this server.

    Every outcome of a graph lookup, including fetch and parse failures, is
    sent as SUCCESS with a gemtext body describing what happened.
    """

    SUCCESS = 20

    BAD_REQUEST = 59


@dataclasses.dataclass
class Response:
    """
    Object that encapsulates information about a single gemini response.
    """

    status: int
    meta: str
    body: typing.Union[None, ResponseType, ApplicationResponse] = None
