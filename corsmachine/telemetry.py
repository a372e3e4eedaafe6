"""CORS events and observers.

Every decision the engine takes is reported as a :class:`CORSEvent`:

- ``accepted`` - a CORS request was allowed and headers were added
- ``invalid`` - the request is not a CORS request (or not a preflight
  request when a preflight was expected)
- ``rejected`` - a CORS request was refused; ``reason`` says why:
  :class:`OriginNotAllowed`, :class:`MethodNotAllowed` or
  :class:`HeadersNotAllowed`

All events carry the request type (``simple`` or ``preflight``) and the
request itself.

Observers are plain callables taking one event. They are fire-and-forget:
an observer that raises is logged and ignored, it never changes which
headers end up on the response.

Example:
    import logging
    from corsmachine import CORS
    from corsmachine.telemetry import attach_default_handler

    logging.basicConfig(level=logging.DEBUG)
    cors = CORS(
        {"origins": ["https://app.example.com"]},
        observers=[attach_default_handler(levels={"rejected": logging.ERROR})],
    )
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, ClassVar, Dict, Iterable, Mapping, Optional, Tuple, Union

from .classifier import RequestType, get_origin
from .models import Request

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Outcome of handling a request."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    INVALID = "invalid"


@dataclass(frozen=True)
class OriginNotAllowed:
    """The request origin matched none of the allowed origins."""

    code: ClassVar[str] = "origin_not_allowed"


@dataclass(frozen=True)
class MethodNotAllowed:
    """The preflight asked for a method outside ``allow_methods``."""

    method: str
    code: ClassVar[str] = "method_not_allowed"


@dataclass(frozen=True)
class HeadersNotAllowed:
    """The preflight asked for headers outside ``allow_headers``."""

    headers: Tuple[str, ...]
    code: ClassVar[str] = "headers_not_allowed"


RejectionReason = Union[OriginNotAllowed, MethodNotAllowed, HeadersNotAllowed]


@dataclass(frozen=True)
class CORSEvent:
    """A single CORS decision."""

    kind: EventKind
    request_type: RequestType
    request: Request = field(compare=False, repr=False)
    reason: Optional[RejectionReason] = None

    @property
    def origin(self) -> Optional[str]:
        return get_origin(self.request)


Observer = Callable[[CORSEvent], None]


def notify(observers: Iterable[Observer], event: CORSEvent) -> None:
    """Deliver an event to every observer, containing observer failures."""
    for observer in observers:
        try:
            observer(event)
        except Exception as e:
            logger.warning(f"CORS observer {observer!r} failed: {e}", exc_info=True)


LevelSpec = Union[int, str, None]


class LoggingObserver:
    """Observer that logs CORS events through the ``logging`` module.

    Each event kind is logged at its own level. Defaults:

    - ``accepted``: DEBUG
    - ``invalid``: DEBUG
    - ``rejected``: WARNING

    Pass ``levels`` to change them, using level numbers or names. A level of
    ``None`` or ``False`` disables logging for that kind.
    """

    DEFAULT_LEVELS: ClassVar[Dict[EventKind, Optional[int]]] = {
        EventKind.ACCEPTED: logging.DEBUG,
        EventKind.INVALID: logging.DEBUG,
        EventKind.REJECTED: logging.WARNING,
    }

    def __init__(self, levels: Optional[Mapping[Union[str, EventKind], LevelSpec]] = None,
                 logger_name: str = __name__):
        self.levels: Dict[EventKind, Optional[int]] = dict(self.DEFAULT_LEVELS)
        for kind, level in (levels or {}).items():
            self.levels[EventKind(kind)] = self._resolve_level(level)
        self.logger = logging.getLogger(logger_name)

    @staticmethod
    def _resolve_level(level: LevelSpec) -> Optional[int]:
        if level is None or level is False:
            return None
        if isinstance(level, int):
            return level
        resolved = logging.getLevelName(str(level).upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        return resolved

    def __call__(self, event: CORSEvent) -> None:
        level = self.levels.get(event.kind)
        if level is None:
            return
        self.logger.log(level, self.format(event))

    def format(self, event: CORSEvent) -> str:
        """Render an event as a human-readable log message."""
        simple = event.request_type is RequestType.SIMPLE
        kind = "Simple" if simple else "Preflight"
        source = f'from Origin "{event.origin}"' if event.origin is not None else "without an Origin header"

        if event.kind is EventKind.ACCEPTED:
            return f"{kind} CORS request {source} is allowed"

        if event.kind is EventKind.INVALID:
            if simple:
                return "Request is not a CORS request because there is no Origin header"
            return (
                "Request is not a preflight CORS request because either it has no Origin header, "
                "its method is not OPTIONS, or it has no Access-Control-Request-Method header"
            )

        reason = event.reason
        if simple:
            return f"Simple CORS request {source} is not allowed"
        if isinstance(reason, OriginNotAllowed) or reason is None:
            return f"Preflight CORS request {source} is not allowed because its origin is not allowed"
        if isinstance(reason, MethodNotAllowed):
            return (
                "Invalid preflight CORS request because the request "
                f"method ({reason.method!r}) is not in allow_methods"
            )
        return (
            "Invalid preflight CORS request because these headers were "
            f"not allowed in allow_headers: {', '.join(reason.headers)}"
        )


def attach_default_handler(levels: Optional[Mapping[Union[str, EventKind], LevelSpec]] = None) -> LoggingObserver:
    """Create the default logging observer.

    Args:
        levels: Per-kind log levels overriding the defaults, e.g.
                ``{"rejected": logging.ERROR, "accepted": None}``
    """
    return LoggingObserver(levels=levels)
