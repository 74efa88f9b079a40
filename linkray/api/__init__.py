"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from linkray.api import app

    uvicorn linkray.api:app --reload
"""

from linkray.api.app import app

__all__ = ["app"]
