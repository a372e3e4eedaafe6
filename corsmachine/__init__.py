"""
A CORS decision engine: origin matching, preflight validation and response
header composition, usable from any Python HTTP stack.

The engine classifies each request (simple CORS, preflight, or not CORS at
all), checks it against an immutable policy, and writes the
``Access-Control-*`` headers into the response. Policies can apply to a whole
service (:class:`CORS`), to groups of paths (:class:`CORSRouter`,
:func:`load_router`), or sit in front of an ASGI application
(:class:`CORSMiddleware`).
"""

from .adapters import CORSMiddleware
from .classifier import RequestType, is_cors_request, is_preflight_request
from .config import load_router
from .cors import (
    CORS,
    apply_preflight_headers,
    apply_simple_headers,
    handle_request,
    send_preflight_response,
)
from .exceptions import ConfigurationError, CorsMachineError, OriginPredicateError
from .metrics import MetricsObserver
from .models import HTTPMethod, MultiValueHeaders, Request, Response
from .options import ALL_HEADERS, ALL_METHODS, CORSOptions, merge_options, normalize_options
from .origins import ANY_ORIGIN, Exact, Pattern, Predicate, origin_matches
from .router import CORSRouter, RouterEntry, select_options_for_path
from .routes import ALL_PATHS, RouteSpec, compile_route
from .telemetry import (
    CORSEvent,
    EventKind,
    HeadersNotAllowed,
    LoggingObserver,
    MethodNotAllowed,
    OriginNotAllowed,
    attach_default_handler,
)

__version__ = "0.1.0"
__author__ = "corsmachine Contributors"
__license__ = "MIT"

__all__ = [
    "CORS",
    "CORSRouter",
    "CORSMiddleware",
    "CORSOptions",
    "normalize_options",
    "merge_options",
    "load_router",
    "ANY_ORIGIN",
    "ALL_METHODS",
    "ALL_HEADERS",
    "ALL_PATHS",
    "Exact",
    "Pattern",
    "Predicate",
    "origin_matches",
    "is_cors_request",
    "is_preflight_request",
    "RequestType",
    "apply_simple_headers",
    "apply_preflight_headers",
    "send_preflight_response",
    "handle_request",
    "compile_route",
    "RouteSpec",
    "RouterEntry",
    "select_options_for_path",
    "Request",
    "Response",
    "HTTPMethod",
    "MultiValueHeaders",
    "CORSEvent",
    "EventKind",
    "OriginNotAllowed",
    "MethodNotAllowed",
    "HeadersNotAllowed",
    "LoggingObserver",
    "MetricsObserver",
    "attach_default_handler",
    "CorsMachineError",
    "ConfigurationError",
    "OriginPredicateError",
]
