"""
Declarative router configuration.

A :class:`~corsmachine.router.CORSRouter` can be described as data (a dict,
a JSON string or a JSON file) instead of registration calls::

    {
        "defaults": {
            "origins": ["https://app.example.com"],
            "origin_regex": "^https://[a-z0-9-]+\\\\.preview\\\\.example\\\\.com$",
            "max_age": 600
        },
        "resources": [
            {"paths": ["/public/*"], "origins": "*"},
            {"paths": ["/api/*"], "allow_headers": "*", "allow_credentials": true},
            {"paths": ["*"]}
        ]
    }

The document is validated with pydantic; any problem is reported as a
:class:`~corsmachine.exceptions.ConfigurationError` carrying the pydantic
error list in ``details``.

Differences from the Python API, since functions and compiled regexes do not
fit in JSON:

- ``origin_regex`` adds pattern origins, alongside any ``origins``. Setting
  either key in a resource replaces the default origins as a whole.
- ``"*"`` as ``allow_methods`` / ``allow_headers`` stands for
  :data:`~corsmachine.options.ALL_METHODS` / ``ALL_HEADERS``.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError
from .router import CORSRouter
from .telemetry import Observer

logger = logging.getLogger(__name__)

ConfigSource = Union[Mapping[str, Any], str, os.PathLike]


class OptionsModel(BaseModel):
    """CORS options as they appear in a configuration document."""

    model_config = ConfigDict(extra="forbid")

    origins: Optional[Union[str, List[str]]] = Field(
        None,
        description='Allowed origins: "*" or exact origins'
    )
    origin_regex: Optional[Union[str, List[str]]] = Field(
        None,
        description="Regular expressions matched anywhere in the request origin"
    )
    allow_methods: Optional[Union[Literal["*"], List[str]]] = None
    allow_headers: Optional[Union[Literal["*"], List[str]]] = None
    allow_credentials: Optional[bool] = None
    allow_private_network: Optional[bool] = None
    expose_headers: Optional[List[str]] = None
    max_age: Optional[int] = Field(None, ge=0, description="Preflight cache duration in seconds")
    passthrough_non_cors: Optional[bool] = None
    reflect_any_origin: Optional[bool] = None

    def to_options(self) -> Dict[str, Any]:
        """Raw options for the keys set in the document."""
        options = self.model_dump(
            exclude_unset=True, exclude_none=True, exclude={"paths", "origins", "origin_regex"}
        )

        if self.origins is not None or self.origin_regex is not None:
            options["origins"] = self._origins()
        return options

    def _origins(self) -> Any:
        origins = self.origins
        if isinstance(origins, str) and origins == "*" and self.origin_regex is None:
            return origins

        values: List[Any] = [origins] if isinstance(origins, str) else list(origins or [])
        patterns = [self.origin_regex] if isinstance(self.origin_regex, str) else (self.origin_regex or [])
        for pattern in patterns:
            try:
                values.append(re.compile(pattern))
            except re.error as e:
                raise ConfigurationError(f"CORS: invalid origin_regex {pattern!r}: {e}") from e
        return values


class ResourceModel(OptionsModel):
    """Options overrides for a group of route patterns."""

    paths: List[str] = Field(..., min_length=1, description='Route patterns, e.g. "/users/*"')


class RouterConfigModel(BaseModel):
    """A whole router: default options plus ordered resources."""

    model_config = ConfigDict(extra="forbid")

    defaults: OptionsModel = Field(default_factory=OptionsModel)
    resources: List[ResourceModel] = Field(default_factory=list)


def _read_source(source: ConfigSource) -> Mapping[str, Any]:
    if isinstance(source, Mapping):
        return source

    if isinstance(source, str) and source.lstrip().startswith("{"):
        text = source
        origin = "configuration string"
    else:
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"CORS: cannot read configuration file {path}: {e}") from e
        origin = str(path)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"CORS: invalid JSON in {origin}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"CORS: configuration must be a JSON object, got {type(data).__name__}")
    return data


def parse_config(source: ConfigSource) -> RouterConfigModel:
    """Validate a configuration document.

    Raises:
        ConfigurationError: If the source cannot be read or is invalid
    """
    data = _read_source(source)
    try:
        return RouterConfigModel.model_validate(data)
    except ValidationError as e:
        details = e.errors(include_url=False)
        raise ConfigurationError(
            f"CORS: invalid configuration ({e.error_count()} error(s))",
            details=details,
        ) from e


def load_router(source: ConfigSource, observers: Iterable[Observer] = ()) -> CORSRouter:
    """Build a :class:`CORSRouter` from a configuration document.

    Args:
        source: A mapping, a JSON string, or the path of a JSON file
        observers: Observers attached to the router

    Raises:
        ConfigurationError: If the document or the resulting options are invalid
    """
    config = parse_config(source)

    router = CORSRouter(observers=observers, **config.defaults.to_options())
    for resource in config.resources:
        router.resource(resource.paths, **resource.to_options())

    logger.debug(f"Loaded CORS router with {len(router.entries)} route(s)")
    return router
