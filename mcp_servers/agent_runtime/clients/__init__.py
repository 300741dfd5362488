"""Declarative HTTP clients."""

from __future__ import annotations

from .engine import ClientEngine, Transport
from .extract import extract_json_path, map_fields, transform_response
from .request import PreparedRequest, build_body, build_headers, build_url, prepare_request

__all__ = [
    "ClientEngine",
    "PreparedRequest",
    "Transport",
    "build_body",
    "build_headers",
    "build_url",
    "extract_json_path",
    "map_fields",
    "prepare_request",
    "transform_response",
]
