"""
Example: Putting corsmachine in front of an ASGI application.

Public assets are readable from any origin, the API accepts credentialed
requests from the web app and its preview deployments.

Run with:
    uvicorn examples.asgi_example:app --reload
"""

import logging
import re

from corsmachine import CORSMiddleware, CORSRouter, MetricsObserver, attach_default_handler


async def api(scope, receive, send):
    """Minimal downstream application."""
    if scope["type"] != "http":
        return
    await send({
        "type": "http.response.start",
        "status": 200,
        "headers": [[b"content-type", b"application/json"], [b"vary", b"Accept-Encoding"]],
    })
    await send({"type": "http.response.body", "body": b'{"message": "hello"}'})


router = CORSRouter(
    observers=[attach_default_handler(), MetricsObserver()],
    origins=["https://app.example.com", re.compile(r"^https://[a-z0-9-]+\.preview\.example\.com$")],
    max_age=600,
)
router.resource("/public/*", origins="*")
router.resource("/api/*", allow_credentials=True, allow_headers=["content-type", "authorization"],
                expose_headers=["x-request-id"])

app = CORSMiddleware(api, router=router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.DEBUG,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    uvicorn.run(app, host="127.0.0.1", port=8000)
