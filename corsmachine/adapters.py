"""
ASGI binding for the CORS engine.

:class:`CORSMiddleware` wraps any ASGI 3.0 application (Starlette, FastAPI,
Quart, plain ASGI callables...) and applies a single policy or a
:class:`~corsmachine.router.CORSRouter` in front of it.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from .cors import CORS, OptionsInput
from .exceptions import ConfigurationError
from .headers import VARY
from .models import MultiValueHeaders, Request, Response
from .router import CORSRouter
from .telemetry import Observer

logger = logging.getLogger(__name__)

Scope = Dict[str, Any]
Message = Dict[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class CORSMiddleware:
    """
    ASGI middleware applying CORS decisions to every HTTP request.

    The middleware:
    - Converts the ASGI scope into a :class:`~corsmachine.models.Request`
    - Answers allowed preflight requests itself (``200 OK``, empty body)
    - Merges CORS headers into the downstream ``http.response.start``
      message of every other allowed request: ``origin`` is merged into
      ``Vary``, the ``Access-Control-*`` headers replace any set downstream
    - Passes non-HTTP scopes (websocket, lifespan) through untouched

    Decisions are taken synchronously inside the event loop; predicate
    origins must not block.

    Example:
        ```python
        from corsmachine import CORSMiddleware

        app = CORSMiddleware(app, options={"origins": ["https://app.example.com"]})

        # Or with per-path policies
        router = CORSRouter(origins=["https://app.example.com"])
        router.resource("/api/*", allow_credentials=True)
        app = CORSMiddleware(app, router=router)
        ```
    """

    def __init__(self,
                 app: ASGIApp,
                 options: Optional[OptionsInput] = None,
                 router: Optional[CORSRouter] = None,
                 observers: Iterable[Observer] = (),
                 **kwargs: Any):
        """
        Args:
            app: Downstream ASGI application
            options: Options of a single policy applied to every path
            router: Router selecting options by path, instead of ``options``
            observers: Observers of the single policy; a router carries its own
            **kwargs: Options of the single policy given as keyword arguments

        Raises:
            ConfigurationError: If both or neither of a policy and a router are given
        """
        self.app = app
        has_policy = options is not None or bool(kwargs)

        self.handler: Union[CORS, CORSRouter]
        if router is not None:
            if has_policy:
                raise ConfigurationError("CORS: pass either options or a router, not both")
            if observers:
                raise ConfigurationError("CORS: observers of a router are given to the router itself")
            self.handler = router
        elif has_policy:
            self.handler = CORS(options, observers, **kwargs)
        else:
            raise ConfigurationError("CORS: CORSMiddleware needs options or a router")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = self._scope_to_request(scope)
        response = self.handler.handle(request, Response())

        if response.halted:
            await self._send_response(response, send)
            return

        if not response.headers:
            await self.app(scope, receive, send)
            return

        cors_headers = response.headers

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                message = dict(message)
                message["headers"] = self._merge_headers(message.get("headers", []), cors_headers)
            await send(message)

        await self.app(scope, receive, send_with_cors)

    def _scope_to_request(self, scope: Scope) -> Request:
        # ASGI uses lowercase names and bytes
        headers = MultiValueHeaders()
        for header_name, header_value in scope.get("headers", []):
            headers.add(header_name.decode("latin-1").lower(), header_value.decode("latin-1"))
        return Request(method=scope["method"], path=scope.get("path", "/"), headers=headers)

    def _merge_headers(self, raw_headers: List[Any], cors_headers: MultiValueHeaders) -> List[List[bytes]]:
        # Downstream headers keep their order; only replaced CORS headers are dropped
        replaced = {name.lower() for name in cors_headers if name.lower() != VARY.lower()}
        vary_tokens = cors_headers.tokens(VARY)

        merged: List[List[bytes]] = []
        vary_positions: List[int] = []
        vary = MultiValueHeaders()
        for name, value in raw_headers:
            lower = name.decode("latin-1").lower()
            if lower in replaced:
                continue
            if lower == VARY.lower():
                vary_positions.append(len(merged))
                vary.add(VARY, value.decode("latin-1"))
            merged.append([name, value])

        changed = False
        for token in vary_tokens:
            changed = vary.add_token(VARY, token) or changed

        if changed and vary_positions:
            # Merged into the first Vary header, where it already sits
            first = vary_positions[0]
            merged[first] = [merged[first][0], vary[VARY].encode("latin-1")]
            for position in reversed(vary_positions[1:]):
                del merged[position]

        appended = MultiValueHeaders(
            (name, value) for name, value in cors_headers.items_all() if name.lower() != VARY.lower()
        )
        if changed and not vary_positions:
            appended.set(VARY, vary[VARY])
        return merged + self._encode_headers(appended)

    def _encode_headers(self, headers: MultiValueHeaders) -> List[List[bytes]]:
        # ASGI header names are lowercase
        return [
            [name.lower().encode("latin-1"), str(value).encode("latin-1")]
            for name, value in headers.items_all()
        ]

    async def _send_response(self, response: Response, send: Send) -> None:
        body = response.body or b""
        if isinstance(body, str):
            body = body.encode("utf-8")

        headers = response.headers.copy()
        headers.set("content-length", str(len(body)))
        if body and "content-type" not in headers:
            headers.set("content-type", "text/plain; charset=utf-8")

        logger.debug(f"Answering preflight request with status {response.status_code}")
        await send({
            "type": "http.response.start",
            "status": response.status_code,
            "headers": self._encode_headers(headers),
        })
        await send({
            "type": "http.response.body",
            "body": body,
        })
