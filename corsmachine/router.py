"""Per-path CORS policies.

A :class:`CORSRouter` holds base options shared by every resource and an
ordered table of resources, each with its own overrides::

    router = CORSRouter(origins=["https://app.example.com"], max_age=600)
    router.resource("/public/*", origins="*")
    router.resource(["/users", "/users/*"], allow_credentials=True)
    router.resource("*")

Entries are evaluated in registration order and the first matching route
wins. Requests whose path matches no entry are passed through untouched.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .cors import handle_request
from .exceptions import ConfigurationError
from .models import Request, Response
from .options import CORSOptions, merge_options, normalize_options
from .routes import RouteInput, RouteSpec, compile_route
from .telemetry import Observer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouterEntry:
    """A compiled route and the options that apply under it."""

    route: RouteSpec
    options: CORSOptions
    pattern: str


def select_options_for_path(path_segments: Sequence[str],
                            entries: Iterable[RouterEntry]) -> Optional[CORSOptions]:
    """Options of the first entry whose route matches, or None."""
    for entry in entries:
        if entry.route.matches(path_segments):
            return entry.options
    return None


class CORSRouter:
    """Router selecting CORS options by request path.

    Base options are given as keyword arguments and merged with each
    resource's overrides at registration time. ``origins`` may be left out of
    the base options as long as every resource provides it.
    """

    def __init__(self, observers: Iterable[Observer] = (), **base_options: Any):
        self.observers = tuple(observers)
        self.base_options: Dict[str, Any] = dict(base_options)
        self._entries: Tuple[RouterEntry, ...] = ()

        # Fail at setup time on malformed base options
        if self.base_options.get("origins") is not None:
            normalize_options(self.base_options)

    @property
    def entries(self) -> Tuple[RouterEntry, ...]:
        return self._entries

    def resource(self, patterns: Union[RouteInput, List[RouteInput]], **overrides: Any) -> "CORSRouter":
        """Register CORS options for one or more route patterns.

        Args:
            patterns: A pattern (``"/users/*"``, ``"*"``, a :class:`RouteSpec`)
                      or a list of them, all sharing the same options
            **overrides: Options replacing the base options for these routes

        Returns:
            The router, for chaining

        Raises:
            ConfigurationError: If the merged options are invalid
        """
        if isinstance(patterns, (str, RouteSpec)):
            patterns = [patterns]
        if not patterns:
            raise ConfigurationError("CORS: resource() needs at least one route pattern")

        options = merge_options(self.base_options, overrides)

        new_entries = []
        for pattern in patterns:
            route = compile_route(pattern)
            text = pattern if isinstance(pattern, str) else route.pattern
            new_entries.append(RouterEntry(route=route, options=options, pattern=text))
            logger.debug(f"Registered CORS resource {text}")

        self._entries = self._entries + tuple(new_entries)
        return self

    def select_options(self, path_segments: Sequence[str]) -> Optional[CORSOptions]:
        return select_options_for_path(path_segments, self._entries)

    def handle(self, request: Request, response: Response) -> Response:
        """Apply the options of the matching resource to one request.

        Allowed preflight requests are answered with ``200 OK`` and an empty
        body; the response comes back halted.
        """
        options = self.select_options(request.path_segments)
        if options is None:
            logger.debug(f"No CORS resource matches {request.path}")
            return response

        return handle_request(request, response, options, self.observers)

    def __repr__(self):
        patterns = ", ".join(entry.pattern for entry in self._entries)
        return f"CORSRouter([{patterns}])"
