"""Route patterns for per-path CORS policies.

Patterns are plain paths split on ``/``. A trailing ``*`` segment matches
zero or more remaining segments, and ``"*"`` alone matches every path::

    compile_route("/users/*").matches(["users"])            # True
    compile_route("/users/*").matches(["users", "1", "x"])  # True
    compile_route("/users").matches(["users", "1"])         # False
"""

from dataclasses import dataclass
from typing import Sequence, Tuple, Union

from .exceptions import ConfigurationError

WILDCARD_SEGMENT = "*"


@dataclass(frozen=True)
class RouteSpec:
    """Compiled route: literal segments, optionally followed by a wildcard."""

    segments: Tuple[str, ...]
    prefix: bool = False

    def matches(self, path_segments: Sequence[str]) -> bool:
        if self.prefix:
            return tuple(path_segments[:len(self.segments)]) == self.segments
        return tuple(path_segments) == self.segments

    @property
    def pattern(self) -> str:
        """Path pattern that compiles back to this route."""
        parts = list(self.segments)
        if self.prefix:
            parts.append(WILDCARD_SEGMENT)
        return "/" + "/".join(parts)


ALL_PATHS = RouteSpec(segments=(), prefix=True)

RouteInput = Union[str, RouteSpec]


def compile_route(pattern: RouteInput) -> RouteSpec:
    """Compile a path pattern into a :class:`RouteSpec`.

    Compiling an already compiled route returns it unchanged.

    Raises:
        ConfigurationError: If the pattern is not a string, or ``*`` appears
            anywhere but in the last segment
    """
    if isinstance(pattern, RouteSpec):
        return pattern
    if not isinstance(pattern, str):
        raise ConfigurationError(f"CORS: route pattern must be a string, got {pattern!r}")

    segments = [s for s in pattern.split("/") if s]
    if segments == [WILDCARD_SEGMENT]:
        return ALL_PATHS

    prefix = bool(segments) and segments[-1] == WILDCARD_SEGMENT
    if prefix:
        segments = segments[:-1]
    if WILDCARD_SEGMENT in segments:
        raise ConfigurationError(f"CORS: '*' must be the last segment of route pattern {pattern!r}")

    return RouteSpec(segments=tuple(segments), prefix=prefix)
