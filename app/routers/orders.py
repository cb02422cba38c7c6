"""Orders API — imported Shopify orders and unbatched order items."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_supervisor
from ..models import Worker
from ..services.order_service import list_orders

router = APIRouter(tags=["orders"])


@router.get("/api/orders")
def api_list_orders(
    status: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    return list_orders(db, status, limit)
