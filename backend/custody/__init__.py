"""Custodial wallet API: session tokens and idempotent token transfers.

``from custody import create_app`` builds the Flask application.
"""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
