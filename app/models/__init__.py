"""
Double Mirror — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from app.models.reflection import Reflection

__all__ = [
    "Reflection",
]
