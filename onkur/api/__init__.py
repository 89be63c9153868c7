"""
API routers package
"""
from onkur.api import (
    system,
    auth,
    events,
    volunteers,
    sponsors,
    gallery,
    impact,
    admin
)

__all__ = [
    "system",
    "auth",
    "events",
    "volunteers",
    "sponsors",
    "gallery",
    "impact",
    "admin",
]
