"""Origin specifications and origin matching.

An allowed origin is described by one of three specifications:

- :class:`Exact` - the request ``Origin`` must be byte-for-byte identical
- :class:`Pattern` - a regular expression must match somewhere in the origin
- :class:`Predicate` - a callable decides, given the origin and the request

The wildcard marker :data:`ANY_ORIGIN` (``"*"``) accepts every origin and is
only valid on its own, never inside a list of specifications.

References:
- RFC 6454: The Web Origin Concept
- WHATWG Fetch Standard: https://fetch.spec.whatwg.org/#http-origin
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Pattern as RegexPattern, Sequence, Tuple, Union

from .exceptions import ConfigurationError, OriginPredicateError

if TYPE_CHECKING:
    from .models import Request

ANY_ORIGIN = "*"


@dataclass(frozen=True)
class Exact:
    """Origin allowed by exact, case-sensitive comparison.

    No normalization happens: ``https://App.example.com`` and
    ``https://app.example.com`` are different origins here.
    """

    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ConfigurationError(f"CORS: exact origin must be a string, got {self.value!r}")
        if self.value == ANY_ORIGIN:
            raise ConfigurationError(
                "CORS: '*' is the wildcard origin and cannot be used as an exact origin"
            )


@dataclass(frozen=True)
class Pattern:
    """Origin allowed when ``regex`` matches anywhere in it (``re.search``).

    Anchor the expression (``^https://.*\\.example\\.com$``) to avoid matching
    ``https://example.com.evil.net``.
    """

    regex: RegexPattern

    def __post_init__(self):
        if isinstance(self.regex, str):
            try:
                object.__setattr__(self, "regex", re.compile(self.regex))
            except re.error as e:
                raise ConfigurationError(f"CORS: invalid origin pattern {self.regex!r}: {e}") from e
        elif not isinstance(self.regex, re.Pattern):
            raise ConfigurationError(f"CORS: origin pattern must be a regex, got {self.regex!r}")


@dataclass(frozen=True)
class Predicate:
    """Origin allowed when ``func(origin, request, *args)`` returns a truthy value.

    The predicate runs on the request-handling thread for every CORS request
    routed to it, so it must be fast, non-blocking and free of side effects.
    Exceptions it raises are not treated as a rejection: they propagate as
    :class:`~corsmachine.exceptions.OriginPredicateError`.
    """

    func: Callable[..., Any]
    args: Tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not callable(self.func):
            raise ConfigurationError(f"CORS: origin predicate must be callable, got {self.func!r}")
        object.__setattr__(self, "args", tuple(self.args))

    def __call__(self, origin: str, request: Optional["Request"] = None) -> bool:
        try:
            return bool(self.func(origin, request, *self.args))
        except Exception as e:
            name = getattr(self.func, "__qualname__", repr(self.func))
            raise OriginPredicateError(
                f"CORS: origin predicate {name} failed for origin {origin!r}: {e}",
                original_exception=e,
            ) from e


OriginSpec = Union[Exact, Pattern, Predicate]
Origins = Union[str, Tuple[OriginSpec, ...]]


def _is_predicate_tuple(value: Any) -> bool:
    # (func, *args); a tuple of specs is a list of origins instead
    return (
        isinstance(value, tuple)
        and bool(value)
        and callable(value[0])
        and not isinstance(value[0], (Exact, Pattern, Predicate))
    )


def coerce_origin_spec(value: Any) -> OriginSpec:
    """Turn a raw origin value into a tagged origin specification.

    Accepted raw values:
        - ``Exact``/``Pattern``/``Predicate`` instances (returned unchanged)
        - ``str`` - exact origin
        - compiled regular expression - pattern
        - callable - predicate without extra arguments
        - ``(callable, *args)`` tuple - predicate with bound extra arguments

    A tuple whose first item is a plain callable is always read as one
    predicate with bound arguments: ``(check, "https://a.com")`` calls
    ``check(origin, request, "https://a.com")``. Pass several origins as a
    list (``[check, "https://a.com"]``) or wrap the callable in
    :class:`Predicate` to mix predicates and other origins.

    Raises:
        ConfigurationError: If the value has none of these shapes
    """
    if isinstance(value, (Exact, Pattern, Predicate)):
        return value
    if isinstance(value, str):
        return Exact(value)
    if isinstance(value, re.Pattern):
        return Pattern(value)
    if _is_predicate_tuple(value):
        return Predicate(value[0], value[1:])
    if callable(value):
        return Predicate(value)
    raise ConfigurationError(f"CORS: unsupported origin specification {value!r}")


def normalize_origins(value: Any) -> Origins:
    """Normalize the ``origins`` option into ``"*"`` or a tuple of specs.

    A list is always a list of origins. A tuple is one too, unless its first
    item is a plain callable: ``(func, *args)`` is a single predicate (see
    :func:`coerce_origin_spec`).

    Raises:
        ConfigurationError: If the value is missing, empty, or mixes ``"*"``
            with other specifications
    """
    if value is None:
        raise ConfigurationError("CORS: origins parameter is required")
    if isinstance(value, str) and value == ANY_ORIGIN:
        return ANY_ORIGIN
    if isinstance(value, (list, tuple)) and not _is_predicate_tuple(value):
        if not value:
            raise ConfigurationError("CORS: origins must not be an empty list")
        if any(isinstance(v, str) and v == ANY_ORIGIN for v in value):
            raise ConfigurationError(
                "CORS: the wildcard origin '*' must be used alone, not inside a list of origins"
            )
        return tuple(coerce_origin_spec(v) for v in value)
    return (coerce_origin_spec(value),)


def spec_matches(origin: str, spec: OriginSpec, request: Optional["Request"] = None) -> bool:
    """Check a single origin specification."""
    if isinstance(spec, Exact):
        return spec.value == origin
    if isinstance(spec, Pattern):
        return spec.regex.search(origin) is not None
    if isinstance(spec, Predicate):
        return spec(origin, request)
    raise TypeError(f"Unknown origin specification: {spec!r}")


def origin_matches(
    origin: str,
    origins: Union[str, OriginSpec, Sequence[OriginSpec]],
    request: Optional["Request"] = None,
) -> bool:
    """Decide whether ``origin`` is allowed by the configured origins.

    Args:
        origin: Value of the request's ``Origin`` header
        origins: ``"*"``, a single specification or a sequence of them
        request: Request handed to predicates as context

    Returns:
        True if the origin is allowed. Specifications are tried in order and
        the first match wins.

    Raises:
        OriginPredicateError: If a predicate raises
    """
    if isinstance(origins, str) and origins == ANY_ORIGIN:
        return True
    if isinstance(origins, (list, tuple)):
        return any(spec_matches(origin, spec, request) for spec in origins)
    return spec_matches(origin, origins, request)


def has_constant_origin(origins: Origins) -> bool:
    """True when every allowed request receives the same Allow-Origin value.

    That is the case for the wildcard and for a single exact origin. Lists of
    several specifications, patterns and predicates mirror whatever origin
    the browser sent.
    """
    if isinstance(origins, str):
        return origins == ANY_ORIGIN
    return len(origins) == 1 and isinstance(origins[0], Exact)
