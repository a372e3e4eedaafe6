"""CORS (Cross-Origin Resource Sharing) request handling.

Low-level operations let a host decide when and where to deal with CORS:

- :func:`apply_simple_headers` adds headers for a simple (actual) request
- :func:`apply_preflight_headers` adds headers for a preflight request
- :func:`send_preflight_response` answers a preflight request and halts

:class:`CORS` combines them for a single policy: simple requests get headers
and continue, allowed preflight requests are answered directly with
``200 OK`` and an empty body.

No CORS headers are added to a request that is not allowed. The response
itself is left untouched: browsers turn the missing headers into a CORS
error on the client side.

References:
- WHATWG Fetch Standard: https://fetch.spec.whatwg.org/#http-cors-protocol
- MDN CORS: https://developer.mozilla.org/en-US/docs/Web/HTTP/CORS
"""

from typing import Any, Iterable, Mapping, Optional, Union

from .classifier import RequestType, get_origin, is_cors_request, is_preflight_request
from .headers import compose_preflight_headers, compose_simple_headers
from .models import HTTPMethod, Request, Response
from .options import CORSOptions, normalize_options
from .preflight import check_preflight, requested_headers, requested_method
from .telemetry import CORSEvent, EventKind, Observer, OriginNotAllowed, RejectionReason, notify

OptionsInput = Union[CORSOptions, Mapping[str, Any]]


def _report(observers: Iterable[Observer], kind: EventKind, request_type: RequestType,
            request: Request, reason: Optional[RejectionReason] = None) -> None:
    notify(observers, CORSEvent(kind, request_type, request, reason))


def _origin_allowed(request: Request, options: CORSOptions) -> bool:
    origin = get_origin(request)
    # Only passthrough_non_cors lets requests without an Origin get this far
    if origin is None:
        return True
    return options.matches_origin(origin, request)


def apply_simple_headers(request: Request, response: Response, options: OptionsInput,
                         observers: Iterable[Observer] = ()) -> bool:
    """Add CORS headers for a simple CORS request.

    Nothing is assumed about the request. If it is not a CORS request or its
    origin is not allowed, the response is left unchanged.

    If the request is allowed, ``Access-Control-Allow-Origin`` is always set;
    ``Access-Control-Allow-Credentials``, ``Access-Control-Expose-Headers``
    and ``Vary`` are set depending on the options.

    Args:
        request: Incoming request
        response: Response to add headers to
        options: Normalized options or raw options mapping
        observers: Callables notified of the outcome

    Returns:
        True if CORS headers were added

    Raises:
        OriginPredicateError: If a predicate origin raises
    """
    options = normalize_options(options)
    observers = tuple(observers)

    if not is_cors_request(request) and not options.passthrough_non_cors:
        _report(observers, EventKind.INVALID, RequestType.SIMPLE, request)
        return False

    if not _origin_allowed(request, options):
        _report(observers, EventKind.REJECTED, RequestType.SIMPLE, request, OriginNotAllowed())
        return False

    if not compose_simple_headers(request, response, options):
        _report(observers, EventKind.INVALID, RequestType.SIMPLE, request)
        return False

    _report(observers, EventKind.ACCEPTED, RequestType.SIMPLE, request)
    return True


def _answers_as_preflight(request: Request, options: CORSOptions) -> bool:
    if is_preflight_request(request):
        return True
    return options.passthrough_non_cors and request.method == HTTPMethod.OPTIONS


def apply_preflight_headers(request: Request, response: Response, options: OptionsInput,
                            observers: Iterable[Observer] = ()) -> bool:
    """Add CORS headers for a preflight request.

    If the request is not a preflight request, its origin is not allowed, or
    it asks for a method or headers that are not allowed, the response is left
    unchanged.

    If the request is allowed, ``Access-Control-Allow-Origin``,
    ``Access-Control-Allow-Methods`` and ``Access-Control-Allow-Headers`` are
    set; ``Access-Control-Allow-Credentials``, ``Access-Control-Max-Age``,
    ``Access-Control-Allow-Private-Network`` and ``Vary`` depend on the
    options.

    Returns:
        True if CORS headers were added

    Raises:
        OriginPredicateError: If a predicate origin raises
    """
    options = normalize_options(options)
    observers = tuple(observers)

    if not _answers_as_preflight(request, options):
        _report(observers, EventKind.INVALID, RequestType.PREFLIGHT, request)
        return False

    if not _origin_allowed(request, options):
        _report(observers, EventKind.REJECTED, RequestType.PREFLIGHT, request, OriginNotAllowed())
        return False

    reason = check_preflight(request, options)
    if reason is not None:
        _report(observers, EventKind.REJECTED, RequestType.PREFLIGHT, request, reason)
        return False

    composed = compose_preflight_headers(
        request, response, options, requested_method(request), requested_headers(request)
    )
    if not composed:
        _report(observers, EventKind.INVALID, RequestType.PREFLIGHT, request)
        return False

    _report(observers, EventKind.ACCEPTED, RequestType.PREFLIGHT, request)
    return True


def send_preflight_response(request: Request, response: Response, options: OptionsInput,
                            status: int = 200, body: Union[str, bytes] = "",
                            observers: Iterable[Observer] = ()) -> Response:
    """Answer a preflight request, whether it is allowed or not.

    Preflight headers are added when the request is allowed (see
    :func:`apply_preflight_headers`), then the response is halted with
    ``status`` and ``body``. A response without CORS headers is how the
    browser learns that the preflight failed.

    Example::

        @app.options("/foo")
        def preflight(request):
            return send_preflight_response(request, Response(), CORS_OPTIONS)
    """
    apply_preflight_headers(request, response, options, observers)
    return response.halt(status, body)


def handle_request(request: Request, response: Response, options: CORSOptions,
                   observers: Iterable[Observer] = ()) -> Response:
    """Apply a policy to one request, answering allowed preflight requests.

    Returns:
        The same response, halted with ``200 OK`` and an empty body when an
        allowed preflight request was answered
    """
    if _answers_as_preflight(request, options):
        if apply_preflight_headers(request, response, options, observers):
            response.halt(200, "")
        return response

    apply_simple_headers(request, response, options, observers)
    return response


class CORS:
    """CORS handling for a single policy.

    Put it in front of the request handlers: it adds headers to simple CORS
    requests and answers allowed preflight requests itself. Requests that
    are not CORS requests, or are not allowed, are passed through untouched.

    Example:
        cors = CORS(origins=["https://app.example.com"], max_age=600)

        response = cors.handle(request, response)
        if not response.halted:
            response = app.execute(request, response)
    """

    def __init__(self, options: Optional[OptionsInput] = None, observers: Iterable[Observer] = (),
                 **kwargs: Any):
        """Build the handler; invalid options fail here, not per request.

        Args:
            options: Normalized options or raw options mapping
            observers: Callables notified of every decision
            **kwargs: Options given as keyword arguments

        Raises:
            ConfigurationError: If the options are invalid
        """
        self.options = normalize_options(options, **kwargs)
        self.observers = tuple(observers)

    def handle(self, request: Request, response: Response) -> Response:
        """Apply the policy to one request.

        Returns:
            The same response, halted with ``200 OK`` and an empty body when
            an allowed preflight request was answered
        """
        return handle_request(request, response, self.options, self.observers)

    def __repr__(self):
        return f"CORS({self.options!r})"
