"""Recent-scan listing.

Routes
------
GET /api/recent?limit=10
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from linkray.api.dependencies import get_owner_id, get_store
from linkray.db.scans import ScanStore

router = APIRouter()


@router.get("/recent")
def recent(
    limit: int = Query(10, ge=1, le=100),
    user_id: Optional[str] = Depends(get_owner_id),
    store: ScanStore = Depends(get_store),
) -> dict[str, Any]:
    """Return the caller's latest scans, newest first.

    Anonymous callers have no stored scans and always get an empty list.
    """
    scans = store.list_recent(user_id, limit)
    return {"success": True, "data": [s.to_dict() for s in scans]}
