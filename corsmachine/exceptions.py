"""
Custom exceptions for corsmachine.

Only setup-time problems and broken origin predicates are exceptional.
A CORS request that is not allowed is an expected outcome: it is reported
to observers and the response is left without CORS headers.
"""
from typing import Any, Dict, List, Optional


class CorsMachineError(Exception):
    """Base exception for corsmachine errors."""

    pass


class ConfigurationError(CorsMachineError, ValueError):
    """Raised when CORS options are missing, malformed or contradictory.

    Configuration errors are raised while options are being built, so a
    misconfigured service fails at startup instead of on the first request.
    """

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class OriginPredicateError(CorsMachineError):
    """Raised when a user-supplied origin predicate fails.

    A failing predicate usually means a configuration bug, so it is not
    treated as a rejected origin.
    """

    def __init__(self, message="Origin predicate failed", original_exception=None):
        self.message = message
        self.original_exception = original_exception
        super().__init__(self.message)
