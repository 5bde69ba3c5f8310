"""Buddy: a conversational CLI assistant backed by a local language model.

The package provides a FastAPI application factory, :func:`create_app`, and
a command-line client (``buddy`` console script, see :mod:`buddy.cli`).

Typical usage
-------------
from buddy import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

__all__ = ["create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


def create_app(*args, **kwargs):
    """Build the FastAPI app; see :func:`buddy.server.create_app`."""
    # Deferred so the CLI client does not import FastAPI.
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
