"""
API endpoints module
"""

from . import health, payment, tickets

__all__ = [
    "health",
    "payment",
    "tickets"
]
