"""
Driver implementations for different execution environments.

This is the third layer in Dave Farley's 4-layer testing architecture.
Drivers know how to translate DSL requests into actual system calls.

Both drivers host the same tiny application behind the CORS engine: it
answers ``200 ok`` to every method except OPTIONS, which gets ``405``, and
adds the configured downstream headers to its responses.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

import anyio

from corsmachine import CORS, CORSMiddleware, CORSRouter, MultiValueHeaders, Request, Response
from .dsl import HttpRequest, HttpResponse


@dataclass
class CorsApp:
    """The system under test: a CORS handler in front of an application."""
    cors: Union[CORS, CORSRouter]
    downstream_headers: Dict[str, str] = field(default_factory=dict)

    def respond(self, method: str) -> Response:
        """What the application behind the CORS layer answers."""
        if method.upper() == "OPTIONS":
            return Response(status_code=405, body="Method Not Allowed", headers=dict(self.downstream_headers))
        return Response(status_code=200, body="ok", headers=dict(self.downstream_headers))


class DriverInterface(ABC):
    """Abstract interface for all drivers."""

    @abstractmethod
    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute an HTTP request and return the response."""
        pass


class DirectDriver(DriverInterface):
    """
    Driver that calls the CORS handler directly.

    This is the most direct way to test the library without any intermediate layers.
    """

    def __init__(self, app: CorsApp):
        self.app = app

    def execute(self, request: HttpRequest) -> HttpResponse:
        cors_request = Request(method=request.method, path=request.path, headers=list(request.headers))

        # Downstream headers first, then CORS headers merged in
        response = self.app.respond(request.method)
        cors_response = self.app.cors.handle(cors_request, Response(headers=response.headers.copy()))

        if not cors_response.halted:
            cors_response.status_code = response.status_code
            cors_response.body = response.body
        return self._convert_response(cors_response)

    def _convert_response(self, response: Response) -> HttpResponse:
        body = response.body or ""
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return HttpResponse(status_code=response.status_code, headers=response.headers.copy(), body=body)


class AsgiDriver(DriverInterface):
    """
    Driver that runs requests through :class:`~corsmachine.CORSMiddleware`.

    Tests the library as it works in front of a real ASGI application, with
    headers travelling as lowercase byte pairs.
    """

    def __init__(self, app: CorsApp):
        self.app = app
        if isinstance(app.cors, CORSRouter):
            self.middleware = CORSMiddleware(self._downstream, router=app.cors)
        else:
            self.middleware = CORSMiddleware(self._downstream, options=app.cors.options,
                                             observers=app.cors.observers)

    async def _downstream(self, scope, receive, send):
        response = self.app.respond(scope["method"])
        body = response.body.encode("utf-8")
        await send({
            "type": "http.response.start",
            "status": response.status_code,
            "headers": [
                [name.encode("latin-1"), value.encode("latin-1")]
                for name, value in response.headers.items_all()
            ],
        })
        await send({"type": "http.response.body", "body": body})

    def execute(self, request: HttpRequest) -> HttpResponse:
        return anyio.run(self._execute, request)

    async def _execute(self, request: HttpRequest) -> HttpResponse:
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": request.method,
            "path": request.path,
            "query_string": b"",
            "headers": [
                [name.lower().encode("latin-1"), value.encode("latin-1")]
                for name, value in request.headers
            ],
        }
        messages: List[Dict[str, Any]] = []

        async def receive():
            return {"type": "http.request", "body": b"", "more_body": False}

        async def send(message):
            messages.append(message)

        await self.middleware(scope, receive, send)
        return self._convert_messages(messages)

    def _convert_messages(self, messages: List[Dict[str, Any]]) -> HttpResponse:
        start = next(m for m in messages if m["type"] == "http.response.start")
        body = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.response.body")
        headers = MultiValueHeaders(
            (name.decode("latin-1"), value.decode("latin-1")) for name, value in start.get("headers", [])
        )
        return HttpResponse(status_code=start["status"], headers=headers, body=body.decode("utf-8"))
