"""
Test framework for CORS testing using 4-layer architecture.
"""

from .dsl import CorsApiDsl, HttpRequest, HttpResponse
from .drivers import AsgiDriver, CorsApp, DirectDriver
from .multi_driver_base import MultiDriverTestBase

__all__ = [
    'CorsApiDsl',
    'HttpRequest',
    'HttpResponse',
    'CorsApp',
    'DirectDriver',
    'AsgiDriver',
    'MultiDriverTestBase',
]
