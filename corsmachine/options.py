"""CORS options: validation and normalization.

Raw options (keyword arguments, dicts, or a configuration file loaded through
:mod:`corsmachine.config`) are turned into an immutable :class:`CORSOptions`
value once, at setup time. Everything that can be computed ahead of time is:
methods are uppercased, headers lowercased, ``max_age`` serialized and
``expose_headers`` joined into the final header value.

References:
- WHATWG Fetch Standard: https://fetch.spec.whatwg.org/#http-cors-protocol
- MDN CORS: https://developer.mozilla.org/en-US/docs/Web/HTTP/CORS
"""

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple, Union

from .exceptions import ConfigurationError
from .models import HTTPMethod
from .origins import ANY_ORIGIN, Origins, has_constant_origin, normalize_origins, origin_matches

if TYPE_CHECKING:
    from .models import Request

logger = logging.getLogger(__name__)


class AllowAll(Enum):
    """Sentinels allowing every requested method or header.

    With a sentinel, preflight responses echo back only what the browser
    asked for instead of enumerating a list.
    """

    METHODS = "all-methods"
    HEADERS = "all-headers"

    def __repr__(self):
        return f"ALL_{self.name}"


ALL_METHODS = AllowAll.METHODS
ALL_HEADERS = AllowAll.HEADERS

DEFAULT_ALLOW_METHODS: Tuple[str, ...] = tuple(
    m.value for m in HTTPMethod if m is not HTTPMethod.OPTIONS
)

AllowedMethods = Union[Tuple[str, ...], AllowAll]
AllowedHeaders = Union[Tuple[str, ...], AllowAll]


def _normalize_tokens(name: str, value: Any, sentinel: AllowAll, upper: bool) -> Union[Tuple[str, ...], AllowAll]:
    if value is sentinel or (isinstance(value, str) and value == "*"):
        return sentinel
    if isinstance(value, AllowAll):
        raise ConfigurationError(f"CORS: {name} cannot be {value!r}")
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(
            f"CORS: {name} must be a list of strings or {sentinel!r}, got {value!r}"
        )

    # ["*"] is the list form of the wildcard
    if list(value) == ["*"]:
        return sentinel
    if "*" in value:
        raise ConfigurationError(f"CORS: '*' must be used alone in {name}, got {value!r}")

    tokens = []
    for token in value:
        if not isinstance(token, str) or not token.strip():
            raise ConfigurationError(f"CORS: {name} contains an invalid entry {token!r}")
        token = token.strip()
        tokens.append(token.upper() if upper else token.lower())
    return tuple(tokens)


def _normalize_flag(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"CORS: {name} must be a boolean, got {value!r}")
    return value


def _normalize_expose_headers(value: Any) -> Optional[str]:
    if value is None:
        return None
    # Already joined (e.g. when options are re-normalized by dataclasses.replace)
    if isinstance(value, str):
        return value or None
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"CORS: expose_headers must be a list of strings, got {value!r}")
    if not all(isinstance(h, str) and h.strip() for h in value):
        raise ConfigurationError(f"CORS: expose_headers contains an invalid entry: {value!r}")
    return ", ".join(h.strip() for h in value) or None


def _normalize_max_age(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigurationError(f"CORS: max_age must be a non-negative integer, got {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigurationError(f"CORS: max_age must be a non-negative integer, got {value}")
        return str(value)
    if isinstance(value, str) and value.isdigit():
        return str(int(value))
    raise ConfigurationError(f"CORS: max_age must be a non-negative integer, got {value!r}")


@dataclass(frozen=True)
class CORSOptions:
    """Immutable CORS policy.

    Build it through :func:`normalize_options` (or directly: the constructor
    applies the same normalization). Instances are safe to share between
    concurrently executing requests.

    Attributes:
        origins: ``"*"`` or a tuple of origin specifications
            (:class:`~corsmachine.origins.Exact`, ``Pattern``, ``Predicate``).
            Required.

        allow_methods: Methods allowed in preflight requests, or
                       :data:`ALL_METHODS`. Simple methods (GET, HEAD, POST)
                       are always allowed.

        allow_headers: Request headers allowed in preflight requests, or
                       :data:`ALL_HEADERS`. Simple headers (Accept,
                       Accept-Language, Content-Language) are always allowed.

        allow_credentials: Send ``Access-Control-Allow-Credentials: true``.
                           Cannot be combined with ``origins="*"`` unless
                           ``reflect_any_origin`` is set.

        allow_private_network: Answer Private Network Access preflights with
                               ``Access-Control-Allow-Private-Network: true``.

        expose_headers: Response headers JavaScript may read, joined into the
                        header value. None means the header is not sent.

        max_age: Seconds a browser may cache a preflight answer, serialized.
                 None means the header is not sent.

        passthrough_non_cors: Add CORS headers even to requests without an
                              ``Origin`` header and answer every OPTIONS
                              request as a preflight.

        reflect_any_origin: Allow ``origins="*"`` with credentials by mirroring
                            the request origin. Development only.

    Examples:
        CORSOptions(origins=["https://app.example.com"], allow_credentials=True)

        CORSOptions(
            origins=re.compile(r"^https://[a-z]+\\.example\\.com$"),
            allow_methods=ALL_METHODS,
            allow_headers=["X-Request-ID"],
            max_age=600,
        )
    """

    origins: Origins
    allow_methods: AllowedMethods = DEFAULT_ALLOW_METHODS
    allow_headers: AllowedHeaders = ()
    allow_credentials: bool = False
    allow_private_network: bool = False
    expose_headers: Optional[str] = None
    max_age: Optional[str] = None
    passthrough_non_cors: bool = False
    reflect_any_origin: bool = False

    def __post_init__(self):
        normalized = {
            "origins": normalize_origins(self.origins),
            "allow_methods": _normalize_tokens("allow_methods", self.allow_methods, ALL_METHODS, upper=True),
            "allow_headers": _normalize_tokens("allow_headers", self.allow_headers, ALL_HEADERS, upper=False),
            "allow_credentials": _normalize_flag("allow_credentials", self.allow_credentials),
            "allow_private_network": _normalize_flag("allow_private_network", self.allow_private_network),
            "expose_headers": _normalize_expose_headers(self.expose_headers),
            "max_age": _normalize_max_age(self.max_age),
            "passthrough_non_cors": _normalize_flag("passthrough_non_cors", self.passthrough_non_cors),
            "reflect_any_origin": _normalize_flag("reflect_any_origin", self.reflect_any_origin),
        }
        for name, value in normalized.items():
            object.__setattr__(self, name, value)
        self.validate()

    def validate(self) -> None:
        """Validate combinations of options.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        # Security: the wildcard cannot be sent together with credentials
        if self.allow_credentials and self.allows_any_origin and not self.reflect_any_origin:
            raise ConfigurationError(
                "CORS: Cannot use wildcard origin '*' with allow_credentials=True. "
                "Specify explicit origins when allowing credentials, or set "
                "reflect_any_origin=True for development environments."
            )

    @property
    def allows_any_origin(self) -> bool:
        return isinstance(self.origins, str) and self.origins == ANY_ORIGIN

    @property
    def sends_wildcard_origin(self) -> bool:
        """True when ``Access-Control-Allow-Origin: *`` is emitted."""
        return self.allows_any_origin and not self.allow_credentials

    @property
    def varies_by_origin(self) -> bool:
        """True when the Allow-Origin value depends on the requesting origin."""
        if self.allows_any_origin:
            return self.allow_credentials
        return not has_constant_origin(self.origins)

    def matches_origin(self, origin: str, request: Optional["Request"] = None) -> bool:
        """Check whether ``origin`` is allowed by this policy.

        Raises:
            OriginPredicateError: If a predicate origin raises
        """
        return origin_matches(origin, self.origins, request)


OPTION_NAMES = frozenset(f.name for f in fields(CORSOptions))


def _check_option_names(options: Mapping[str, Any]) -> None:
    unknown = sorted(set(options) - OPTION_NAMES)
    if unknown:
        raise ConfigurationError(
            f"CORS: unknown option(s) {', '.join(unknown)}; "
            f"valid options are {', '.join(sorted(OPTION_NAMES))}"
        )


def normalize_options(raw: Optional[Union[Mapping[str, Any], CORSOptions]] = None, **kwargs: Any) -> CORSOptions:
    """Validate raw options and build a :class:`CORSOptions`.

    Args:
        raw: Mapping of option names to raw values, or already-normalized
             options (returned unchanged unless keyword overrides are given)
        **kwargs: Options given as keyword arguments; they take precedence
                  over ``raw``

    Returns:
        Normalized, immutable options

    Raises:
        ConfigurationError: If ``origins`` is missing or any option is malformed

    Example:
        normalize_options(origins="*", max_age=600, expose_headers=["X-Foo"])
    """
    if isinstance(raw, CORSOptions):
        return merge_options(raw, kwargs) if kwargs else raw

    options: Dict[str, Any] = dict(raw or {})
    options.update(kwargs)
    _check_option_names(options)

    if options.get("origins") is None:
        raise ConfigurationError("CORS: origins parameter is required")

    normalized = CORSOptions(**options)
    logger.debug(f"Normalized CORS options: {normalized!r}")
    return normalized


def merge_options(base: Union[Mapping[str, Any], CORSOptions], overrides: Mapping[str, Any]) -> CORSOptions:
    """Apply per-resource overrides on top of base options.

    Overrides replace base values option by option; the merged result is
    normalized and validated again as a whole, so an override can make an
    otherwise valid base invalid (and vice versa).

    Raises:
        ConfigurationError: If the merged options are invalid
    """
    _check_option_names(overrides)
    if isinstance(base, CORSOptions):
        return replace(base, **overrides)

    merged = dict(base)
    merged.update(overrides)
    return normalize_options(merged)
