from typing import Optional

from fastapi import Header, Request

from linkray.classifier.gateway import ClassifierGateway
from linkray.db.scans import ScanStore


def get_owner_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Owner identity forwarded by the auth layer; ``None`` for anonymous calls."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def get_store(request: Request) -> ScanStore:
    return request.app.state.store


def get_gateway(request: Request) -> ClassifierGateway:
    return request.app.state.gateway
