"""REST API adapters for the media catalogue.

This package exposes the Falcon application factory used by runtime adapters
and integration tests.

Examples
--------
>>> from mediacat.api import create_app
>>> app = create_app(service)  # doctest: +SKIP
"""

from __future__ import annotations

from .app import create_app

__all__ = ["create_app"]
