"""
Tests for the ASGI CORS middleware.
"""

import pytest

from corsmachine import ConfigurationError, CORSMiddleware, CORSRouter, OriginPredicateError

pytestmark = pytest.mark.anyio


def http_scope(method="GET", path="/", headers=None):
    return {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [[k.lower().encode("latin-1"), v.encode("latin-1")] for k, v in (headers or {}).items()],
    }


def make_app(headers=None, calls=None):
    async def app(scope, receive, send):
        if calls is not None:
            calls.append(scope)
        await send({
            "type": "http.response.start",
            "status": 200,
            "headers": [[k.encode("latin-1"), v.encode("latin-1")] for k, v in (headers or [])],
        })
        await send({"type": "http.response.body", "body": b"hello"})
    return app


async def run(middleware, scope):
    sent = []

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message):
        sent.append(message)

    await middleware(scope, receive, send)
    return sent


def header_pairs(message):
    return [(k.decode("latin-1").lower(), v.decode("latin-1")) for k, v in message["headers"]]


class TestCORSMiddleware:
    """Test ASGI message handling."""

    async def test_preflight_answered_without_calling_app(self):
        calls = []
        middleware = CORSMiddleware(make_app(calls=calls), options={"origins": "http://a.com", "allow_methods": ["PUT"]})

        sent = await run(middleware, http_scope("OPTIONS", "/foo", {
            "Origin": "http://a.com",
            "Access-Control-Request-Method": "PUT",
        }))

        assert calls == []
        assert sent[0]["status"] == 200
        headers = dict(header_pairs(sent[0]))
        assert headers["access-control-allow-origin"] == "http://a.com"
        assert headers["access-control-allow-methods"] == "PUT"
        assert headers["content-length"] == "0"
        assert sent[1] == {"type": "http.response.body", "body": b""}

    async def test_simple_request_headers_merged(self):
        middleware = CORSMiddleware(make_app([("Content-Type", "text/plain")]), origins="*")

        sent = await run(middleware, http_scope(headers={"Origin": "http://a.com"}))

        headers = dict(header_pairs(sent[0]))
        assert headers["access-control-allow-origin"] == "*"
        assert headers["content-type"] == "text/plain"
        assert sent[1]["body"] == b"hello"

    async def test_vary_merged_with_downstream(self):
        app = make_app([("Vary", "Accept-Encoding")])
        middleware = CORSMiddleware(app, origins=["http://a.com", "http://b.com"])

        sent = await run(middleware, http_scope(headers={"Origin": "http://b.com"}))

        assert ("vary", "Accept-Encoding, origin") in header_pairs(sent[0])

    async def test_downstream_cors_header_replaced(self):
        app = make_app([("Access-Control-Allow-Origin", "*")])
        middleware = CORSMiddleware(app, origins=["http://a.com", "http://b.com"])

        sent = await run(middleware, http_scope(headers={"Origin": "http://a.com"}))

        values = [v for k, v in header_pairs(sent[0]) if k == "access-control-allow-origin"]
        assert values == ["http://a.com"]

    async def test_downstream_header_order_preserved(self):
        app = make_app([("set-cookie", "a=1"), ("x-mid", "1"), ("set-cookie", "b=2")])
        middleware = CORSMiddleware(app, origins="*")

        sent = await run(middleware, http_scope(headers={"Origin": "http://a.com"}))

        assert sent[0]["headers"] == [
            [b"set-cookie", b"a=1"],
            [b"x-mid", b"1"],
            [b"set-cookie", b"b=2"],
            [b"access-control-allow-origin", b"*"],
        ]

    async def test_vary_merged_in_place(self):
        app = make_app([("x-first", "1"), ("vary", "Accept"), ("x-mid", "2"), ("vary", "Cookie")])
        middleware = CORSMiddleware(app, origins=["http://a.com", "http://b.com"])

        sent = await run(middleware, http_scope(headers={"Origin": "http://a.com"}))

        assert sent[0]["headers"] == [
            [b"x-first", b"1"],
            [b"vary", b"Accept, Cookie, origin"],
            [b"x-mid", b"2"],
            [b"access-control-allow-origin", b"http://a.com"],
        ]

    async def test_vary_already_listing_origin_untouched(self):
        app = make_app([("vary", "Origin"), ("x-after", "1")])
        middleware = CORSMiddleware(app, origins=["http://a.com", "http://b.com"])

        sent = await run(middleware, http_scope(headers={"Origin": "http://a.com"}))

        assert sent[0]["headers"][:2] == [[b"vary", b"Origin"], [b"x-after", b"1"]]

    async def test_cors_header_names_lowercase(self):
        middleware = CORSMiddleware(make_app(), origins=["http://a.com", "http://b.com"],
                                    allow_credentials=True, expose_headers=["X-Request-Id"])

        simple = await run(middleware, http_scope(headers={"Origin": "http://a.com"}))
        preflight = await run(middleware, http_scope("OPTIONS", "/", {
            "Origin": "http://a.com",
            "Access-Control-Request-Method": "PUT",
        }))

        for message in (simple[0], preflight[0]):
            names = [name for name, _ in message["headers"]]
            assert names == [name.lower() for name in names]
        assert [b"vary", b"origin"] in simple[0]["headers"]

    async def test_rejected_request_untouched(self):
        app = make_app([("Vary", "Accept-Encoding")])
        middleware = CORSMiddleware(app, origins="http://a.com")

        sent = await run(middleware, http_scope(headers={"Origin": "http://evil.com"}))

        assert header_pairs(sent[0]) == [("vary", "Accept-Encoding")]

    async def test_non_http_scope_passes_through(self):
        calls = []
        middleware = CORSMiddleware(make_app(calls=calls), origins="*")

        await run(middleware, {"type": "websocket", "path": "/ws", "headers": []})

        assert calls[0]["type"] == "websocket"

    async def test_router_selects_policy_by_path(self):
        router = CORSRouter(origins="http://a.com")
        router.resource("/api/*")
        middleware = CORSMiddleware(make_app(), router=router)

        routed = await run(middleware, http_scope(path="/api/x", headers={"Origin": "http://a.com"}))
        unrouted = await run(middleware, http_scope(path="/static/x", headers={"Origin": "http://a.com"}))

        assert "access-control-allow-origin" in dict(header_pairs(routed[0]))
        assert "access-control-allow-origin" not in dict(header_pairs(unrouted[0]))

    async def test_predicate_error_not_swallowed(self):
        def broken(origin, request):
            raise RuntimeError("tenant lookup failed")

        middleware = CORSMiddleware(make_app(), origins=broken)

        with pytest.raises(OriginPredicateError):
            await run(middleware, http_scope(headers={"Origin": "http://a.com"}))


class TestCORSMiddlewareConfiguration:
    """Test middleware construction."""

    def test_needs_options_or_router(self):
        with pytest.raises(ConfigurationError, match="needs options or a router"):
            CORSMiddleware(make_app())

    def test_rejects_options_and_router(self):
        with pytest.raises(ConfigurationError, match="not both"):
            CORSMiddleware(make_app(), options={"origins": "*"}, router=CORSRouter(origins="*"))

    def test_rejects_observers_with_router(self):
        with pytest.raises(ConfigurationError, match="given to the router"):
            CORSMiddleware(make_app(), router=CORSRouter(origins="*"), observers=[print])

    def test_invalid_options_fail_at_construction(self):
        with pytest.raises(ConfigurationError):
            CORSMiddleware(make_app(), origins="*", allow_credentials=True)
