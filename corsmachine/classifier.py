"""Request classification: is this a CORS request, and is it a preflight?

Classification only looks at the shape of the request. Whether a CORS
request is *allowed* is decided later, against a policy.
"""

from enum import Enum
from typing import Optional

from .models import HTTPMethod, Request

ORIGIN = "Origin"
ACCESS_CONTROL_REQUEST_METHOD = "Access-Control-Request-Method"
ACCESS_CONTROL_REQUEST_HEADERS = "Access-Control-Request-Headers"


class RequestType(str, Enum):
    """Kind of CORS interaction being handled."""

    SIMPLE = "simple"
    PREFLIGHT = "preflight"


def get_origin(request: Request) -> Optional[str]:
    """First value of the ``Origin`` header, or None."""
    values = request.header(ORIGIN)
    return values[0] if values else None


def is_cors_request(request: Request) -> bool:
    """Check whether the request carries an ``Origin`` header.

    This does not check that the CORS request is allowed, only that it is
    one.
    """
    return bool(request.header(ORIGIN))


def is_preflight_request(request: Request) -> bool:
    """Check whether the request is a CORS preflight request.

    A preflight request is an ``OPTIONS`` CORS request carrying an
    ``Access-Control-Request-Method`` header. A preflight request is always a
    CORS request too, so callers only need this check.
    """
    return (
        request.method == HTTPMethod.OPTIONS
        and is_cors_request(request)
        and bool(request.header(ACCESS_CONTROL_REQUEST_METHOD))
    )
