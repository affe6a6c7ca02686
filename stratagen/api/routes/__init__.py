"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from stratagen.api.routes import automation, generation, intelligence, sessions

__all__ = [
    "automation",
    "generation",
    "intelligence",
    "sessions",
]
