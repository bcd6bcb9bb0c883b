from collections.abc import Callable
from typing import Literal

from static_host.request import Request
from static_host.response import Response
from static_host_loop.typedefs import Coro

type HTTPHeaders = dict[str, str]

type HTTPMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]

type HTTPHandler = Callable[[Request], Coro[Response] | Response]

type HTTPMiddleware = Callable[[HTTPHandler], HTTPHandler]
