"""CORS response header composition.

The functions here only write headers; they assume the request has already
been validated (origin, and for preflight requests method and headers).

Notes on the exact shape of the headers:

- ``Access-Control-Allow-Origin`` is ``*`` only for wildcard policies without
  credentials. Otherwise the request origin is mirrored, which keeps the list
  of allowed origins private.
- ``Access-Control-Allow-Credentials`` only ever carries ``true``; its absence
  already means false.
- With :data:`~corsmachine.options.ALL_METHODS` or
  :data:`~corsmachine.options.ALL_HEADERS` only what the browser asked for is
  echoed back.
- ``origin`` is merged into ``Vary`` whenever the Allow-Origin value depends on
  the request origin, so shared caches do not serve one origin's answer to
  another.

References:
- WHATWG Fetch Standard: https://fetch.spec.whatwg.org/#http-responses
- Private Network Access: https://wicg.github.io/private-network-access/
"""

import logging
from typing import List, Optional

from .classifier import get_origin
from .models import Request, Response
from .options import ALL_HEADERS, ALL_METHODS, CORSOptions
from .origins import Exact, has_constant_origin

logger = logging.getLogger(__name__)

ACCESS_CONTROL_ALLOW_ORIGIN = "Access-Control-Allow-Origin"
ACCESS_CONTROL_ALLOW_CREDENTIALS = "Access-Control-Allow-Credentials"
ACCESS_CONTROL_ALLOW_METHODS = "Access-Control-Allow-Methods"
ACCESS_CONTROL_ALLOW_HEADERS = "Access-Control-Allow-Headers"
ACCESS_CONTROL_ALLOW_PRIVATE_NETWORK = "Access-Control-Allow-Private-Network"
ACCESS_CONTROL_EXPOSE_HEADERS = "Access-Control-Expose-Headers"
ACCESS_CONTROL_MAX_AGE = "Access-Control-Max-Age"
VARY = "Vary"

CORS_RESPONSE_HEADERS = (
    ACCESS_CONTROL_ALLOW_ORIGIN,
    ACCESS_CONTROL_ALLOW_CREDENTIALS,
    ACCESS_CONTROL_ALLOW_METHODS,
    ACCESS_CONTROL_ALLOW_HEADERS,
    ACCESS_CONTROL_ALLOW_PRIVATE_NETWORK,
    ACCESS_CONTROL_EXPOSE_HEADERS,
    ACCESS_CONTROL_MAX_AGE,
)


def allow_origin_value(request: Request, options: CORSOptions) -> Optional[str]:
    """Value for ``Access-Control-Allow-Origin``, or None if none can be sent.

    None only happens for requests without an ``Origin`` header (handled in
    passthrough mode) whose policy has no single fixed origin to announce.
    """
    if options.sends_wildcard_origin:
        return "*"

    origin = get_origin(request)
    if origin is not None:
        return origin

    if not options.allows_any_origin and has_constant_origin(options.origins):
        fixed = options.origins[0]
        if isinstance(fixed, Exact):
            return fixed.value
    return None


def put_allow_credentials_header(response: Response, options: CORSOptions) -> None:
    if options.allow_credentials:
        response.headers.set(ACCESS_CONTROL_ALLOW_CREDENTIALS, "true")


def put_vary_header(response: Response, options: CORSOptions) -> None:
    if options.varies_by_origin:
        response.headers.add_token(VARY, "origin")


def put_common_headers(request: Request, response: Response, options: CORSOptions) -> bool:
    """Write the headers shared by simple and preflight responses.

    Returns:
        False (and writes nothing) if no Allow-Origin value can be produced
    """
    value = allow_origin_value(request, options)
    if value is None:
        return False

    response.headers.set(ACCESS_CONTROL_ALLOW_ORIGIN, value)
    put_allow_credentials_header(response, options)
    put_vary_header(response, options)
    return True


def put_expose_headers_header(response: Response, options: CORSOptions) -> None:
    if options.expose_headers:
        response.headers.set(ACCESS_CONTROL_EXPOSE_HEADERS, options.expose_headers)


def put_allow_methods_header(response: Response, options: CORSOptions, method: Optional[str]) -> None:
    if options.allow_methods is ALL_METHODS:
        value = method or ""
    else:
        value = ", ".join(options.allow_methods)  # type: ignore[arg-type]

    if value:
        response.headers.set(ACCESS_CONTROL_ALLOW_METHODS, value)


def put_allow_headers_header(response: Response, options: CORSOptions, headers: List[str]) -> None:
    if options.allow_headers is ALL_HEADERS:
        value = ", ".join(headers)
    else:
        value = ", ".join(options.allow_headers)  # type: ignore[arg-type]

    if value:
        response.headers.set(ACCESS_CONTROL_ALLOW_HEADERS, value)


def put_max_age_header(response: Response, options: CORSOptions) -> None:
    if options.max_age is not None:
        response.headers.set(ACCESS_CONTROL_MAX_AGE, options.max_age)


def put_allow_private_network_header(response: Response, options: CORSOptions) -> None:
    if options.allow_private_network:
        response.headers.set(ACCESS_CONTROL_ALLOW_PRIVATE_NETWORK, "true")


def compose_simple_headers(request: Request, response: Response, options: CORSOptions) -> bool:
    """Write the header set of an allowed simple (actual) CORS request."""
    if not put_common_headers(request, response, options):
        return False
    put_expose_headers_header(response, options)
    logger.debug(f"Added simple CORS headers for origin {get_origin(request)!r}")
    return True


def compose_preflight_headers(
    request: Request,
    response: Response,
    options: CORSOptions,
    method: Optional[str],
    headers: List[str],
) -> bool:
    """Write the header set of an allowed preflight request.

    Args:
        method: Method requested in ``Access-Control-Request-Method``
        headers: Lowercased names requested in ``Access-Control-Request-Headers``
    """
    if not put_common_headers(request, response, options):
        return False
    put_allow_methods_header(response, options, method)
    put_allow_headers_header(response, options, headers)
    put_max_age_header(response, options)
    put_allow_private_network_header(response, options)
    logger.debug(f"Added preflight CORS headers for origin {get_origin(request)!r}")
    return True
