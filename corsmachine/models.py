"""
Request and response facades used by the CORS decision engine.

The engine never talks to a server directly. Hosts convert their own request
objects into a :class:`Request` and give the engine a :class:`Response` whose
headers it can mutate; the ASGI middleware in :mod:`corsmachine.adapters` is
one such host.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class MultiValueHeaders:
    """
    Multi-value, case-insensitive headers container.

    HTTP header names are case-insensitive and the same header can appear
    several times (``Vary``, ``Access-Control-Request-Headers``). Values keep
    the order in which they were added and the casing of the first name seen.

    Example::

        headers = MultiValueHeaders({"Vary": "Accept"})
        headers.add_token("vary", "origin")
        headers.get("Vary")        # 'Accept, origin'
        headers.get_all("origin")  # []
    """

    def __init__(self, data=None):
        # Dict[lowercase_name, List[Tuple[original_name, value]]]
        self._headers: Dict[str, List[Tuple[str, str]]] = {}

        if data is None:
            return
        if isinstance(data, MultiValueHeaders):
            self._headers = {k: list(v) for k, v in data._headers.items()}
        elif isinstance(data, dict):
            for name, value in data.items():
                if isinstance(value, (list, tuple)):
                    for v in value:
                        self.add(name, v)
                else:
                    self.add(name, value)
        else:
            for name, value in data:
                self.add(name, value)

    def add(self, name: str, value: str) -> None:
        """Append a value, keeping any values already present for ``name``."""
        self._headers.setdefault(name.lower(), []).append((name, value))

    def set(self, name: str, value: str) -> None:
        """Replace every value of ``name`` with a single value."""
        self._headers[name.lower()] = [(name, value)]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value of ``name`` or ``default``."""
        values = self._headers.get(name.lower())
        if values:
            return values[0][1]
        return default

    def get_all(self, name: str) -> List[str]:
        """Return every value of ``name`` in insertion order (empty if absent)."""
        return [value for _, value in self._headers.get(name.lower(), [])]

    def tokens(self, name: str) -> List[str]:
        """Split every value of a list-valued header into trimmed tokens."""
        result = []
        for value in self.get_all(name):
            result.extend(token.strip() for token in value.split(","))
        return [token for token in result if token]

    def add_token(self, name: str, token: str) -> bool:
        """Merge ``token`` into a comma-separated list header such as ``Vary``.

        Existing values are preserved and the token is appended to them. Nothing
        changes when the token (compared case-insensitively) or ``*`` is already
        listed.

        Returns:
            True if the header was modified
        """
        present = {t.lower() for t in self.tokens(name)}
        if token.lower() in present or "*" in present:
            return False

        existing = self.get_all(name)
        if not existing:
            self.set(name, token)
        else:
            original_name = self._headers[name.lower()][0][0]
            self.set(original_name, ", ".join(existing + [token]))
        return True

    def remove(self, name: str) -> None:
        """Delete every value of ``name`` if present."""
        self._headers.pop(name.lower(), None)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return name.lower() in self._headers

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __iter__(self):
        for values in self._headers.values():
            yield values[0][0]

    def __len__(self):
        return len(self._headers)

    def items(self) -> List[Tuple[str, str]]:
        """Return (name, first_value) pairs."""
        return [(values[0][0], values[0][1]) for values in self._headers.values()]

    def items_all(self) -> List[Tuple[str, str]]:
        """Return every (name, value) pair, duplicates included."""
        result: List[Tuple[str, str]] = []
        for values in self._headers.values():
            result.extend(values)
        return result

    def to_dict(self) -> Dict[str, str]:
        """Flatten to a dict of first values keyed by original names."""
        return dict(self.items())

    def copy(self) -> "MultiValueHeaders":
        return MultiValueHeaders(self)

    def __eq__(self, other):
        if not isinstance(other, MultiValueHeaders):
            return NotImplemented
        return self._headers == other._headers

    def __repr__(self):
        return f"MultiValueHeaders({self.items_all()!r})"


class HTTPMethod(str, Enum):
    """HTTP methods the CORS engine needs to name."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"


@dataclass
class Request:
    """Read-only view of an inbound HTTP request.

    Only the method, the path and the headers matter for CORS decisions.
    """

    method: str
    path: str = "/"
    headers: MultiValueHeaders = field(default_factory=MultiValueHeaders)

    def __post_init__(self):
        self.method = str(self.method.value if isinstance(self.method, Enum) else self.method).upper()
        if not isinstance(self.headers, MultiValueHeaders):
            self.headers = MultiValueHeaders(self.headers)

    @property
    def path_segments(self) -> List[str]:
        """Path split on ``/`` with empty segments dropped."""
        return [s for s in self.path.split("/") if s]

    def header(self, name: str) -> List[str]:
        """Every value of a request header (case-insensitive, empty if absent)."""
        return self.headers.get_all(name)


@dataclass
class Response:
    """Response under construction for a single request.

    The CORS engine writes headers into it and, for accepted preflight
    requests, finalizes it with :meth:`halt`. Hosts must stop processing the
    request once ``halted`` is set.
    """

    status_code: int = 200
    body: Optional[Union[str, bytes]] = None
    headers: MultiValueHeaders = field(default_factory=MultiValueHeaders)
    halted: bool = False

    def __post_init__(self):
        if not isinstance(self.headers, MultiValueHeaders):
            self.headers = MultiValueHeaders(self.headers)

    def halt(self, status_code: int, body: Union[str, bytes] = "") -> "Response":
        """Finalize the response and terminate the request pipeline."""
        logger.debug(f"Halting response with status {status_code}")
        self.status_code = status_code
        self.body = body
        self.halted = True
        return self
