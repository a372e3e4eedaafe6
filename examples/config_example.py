#!/usr/bin/env python3
"""
Example: Loading per-path CORS policies from a JSON document and checking
requests against them without any server.
"""

import logging

from corsmachine import CORSEvent, Request, Response, load_router

CONFIG = """
{
    "defaults": {"origins": ["https://app.example.com"], "max_age": 600},
    "resources": [
        {"paths": ["/public/*"], "origins": "*"},
        {"paths": ["/api/*"], "allow_methods": "*", "allow_headers": "*", "allow_credentials": true}
    ]
}
"""


def print_event(event: CORSEvent):
    reason = event.reason.code if event.reason else "-"
    print(f"  {event.request_type.value} {event.kind.value} ({reason})")


def show(router, method, path, headers):
    response = router.handle(Request(method, path, headers), Response())
    print(f"{method} {path} halted={response.halted}")
    for name, value in response.headers.items_all():
        print(f"  {name}: {value}")


def main():
    logging.basicConfig(level=logging.DEBUG,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    router = load_router(CONFIG, observers=[print_event])

    show(router, "GET", "/public/logo.png", {"Origin": "https://elsewhere.example.org"})
    show(router, "OPTIONS", "/api/orders", {
        "Origin": "https://app.example.com",
        "Access-Control-Request-Method": "PATCH",
        "Access-Control-Request-Headers": "X-Trace-Id",
    })
    show(router, "GET", "/api/orders", {"Origin": "https://evil.example.org"})


if __name__ == "__main__":
    main()
