"""
This package contains the round engine and lobby server for the card trading table.
"""

from .api import app
from .round import Round
from .session import SessionRegistry

__all__ = [
    "app",
    "Round",
    "SessionRegistry",
]
