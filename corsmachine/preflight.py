"""Preflight validation.

A preflight request announces the method and headers the actual request
will use. Both must be allowed by the policy for the preflight to succeed.
Simple methods and simple headers are always allowed because browsers send
them without asking.
"""

import logging
from typing import List, Optional

from .classifier import ACCESS_CONTROL_REQUEST_HEADERS, ACCESS_CONTROL_REQUEST_METHOD
from .models import HTTPMethod, Request
from .options import ALL_HEADERS, ALL_METHODS, CORSOptions
from .telemetry import HeadersNotAllowed, MethodNotAllowed, RejectionReason

logger = logging.getLogger(__name__)

SIMPLE_METHODS = frozenset({HTTPMethod.GET.value, HTTPMethod.HEAD.value, HTTPMethod.POST.value})
SIMPLE_HEADERS = frozenset({"accept", "accept-language", "content-language"})


def requested_method(request: Request) -> Optional[str]:
    """Method announced in ``Access-Control-Request-Method`` (first value)."""
    values = request.header(ACCESS_CONTROL_REQUEST_METHOD)
    return values[0].strip() if values else None


def requested_headers(request: Request) -> List[str]:
    """Header names announced in ``Access-Control-Request-Headers``.

    All values of the header are split on commas, trimmed and lowercased;
    empty entries are dropped.
    """
    return [name.lower() for name in request.headers.tokens(ACCESS_CONTROL_REQUEST_HEADERS)]


def method_allowed(method: Optional[str], options: CORSOptions) -> bool:
    """Check a requested method against the policy.

    The comparison is case-sensitive: methods are uppercase by convention and
    configured methods are uppercased during normalization.
    """
    if method is None or options.allow_methods is ALL_METHODS:
        return True
    return method in SIMPLE_METHODS or method in options.allow_methods


def disallowed_headers(headers: List[str], options: CORSOptions) -> List[str]:
    """Requested header names the policy does not allow, in request order."""
    if options.allow_headers is ALL_HEADERS:
        return []
    return [
        name for name in headers
        if name not in SIMPLE_HEADERS and name not in options.allow_headers
    ]


def check_preflight(request: Request, options: CORSOptions) -> Optional[RejectionReason]:
    """Validate the method and headers requested by a preflight request.

    The origin is expected to have been checked already.

    Returns:
        None if the preflight is allowed, otherwise the reason it is not.
        A disallowed method is reported before disallowed headers.
    """
    method = requested_method(request)
    if not method_allowed(method, options):
        logger.debug(f"Preflight requested method {method!r} which is not allowed")
        return MethodNotAllowed(method or "")

    rejected = disallowed_headers(requested_headers(request), options)
    if rejected:
        logger.debug(f"Preflight requested headers {rejected!r} which are not allowed")
        return HeadersNotAllowed(tuple(rejected))

    return None


def allowed_preflight(request: Request, options: CORSOptions) -> bool:
    """True if both the requested method and headers are allowed."""
    return check_preflight(request, options) is None
