"""
routers/shopify.py — Review Shopify orders and import chosen line items

Business Rules:
- Supervisor or manager only
- Unconfigured store → 400; Shopify unreachable or erroring → 502
- Import is per order and per line item; already-imported items are skipped
  in the review list

Called by: main.py (router mount)
Depends on: services/shopify_sync, connectors/shopify
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..connectors.shopify import ShopifyConnector, ShopifyError
from ..database import get_db
from ..dependencies import require_supervisor, unwrap
from ..models import Worker
from ..schemas.responses import ShopifyImportResponse
from ..schemas.settings import ShopifyImportRequest
from ..services.shopify_sync import (
    fetch_orders_for_review,
    get_connector,
    import_selected_line_items,
)

router = APIRouter(tags=["shopify"])


def _connector(db: Session) -> ShopifyConnector:
    try:
        return get_connector(db)
    except ShopifyError as e:
        raise HTTPException(400, str(e))


async def _review(db: Session, user: Worker, limit: int) -> dict:
    connector = _connector(db)
    try:
        return await fetch_orders_for_review(db, connector, user, limit)
    except ShopifyError as e:
        raise HTTPException(502, str(e))


@router.post("/api/shopify/sync")
async def sync_orders(
    limit: int = Query(50, ge=1, le=250),
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    return await _review(db, user, limit)


@router.get("/api/shopify/orders")
async def review_orders(
    limit: int = Query(50, ge=1, le=250),
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    return await _review(db, user, limit)


@router.post("/api/shopify/import", response_model=ShopifyImportResponse)
async def import_items(
    body: ShopifyImportRequest,
    user: Worker = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    if not body.line_item_ids:
        raise HTTPException(400, "Select at least one line item to import")
    connector = _connector(db)
    try:
        result = await import_selected_line_items(
            db, connector, body.order_id, body.line_item_ids, user
        )
    except ShopifyError as e:
        raise HTTPException(502, str(e))
    return unwrap(result)
