"""Expose the ORM models at package level.

These re-exports are intentional so callers can import from ``models``
(e.g. `from models import Document`) and so ``Base.metadata`` sees every table.
"""

from .base import Base  # noqa: F401
from .clients import Client  # noqa: F401
from .documents import Document  # noqa: F401
from .review_sessions import ReviewSession  # noqa: F401
