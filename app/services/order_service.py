"""Order listings for the production board.

Business Rules:
- status=pending means order items that are not yet part of any batch
- Item counts are computed per order, newest orders first

Called by: routers/orders.py, routers/tasks.py
Depends on: models (Order, OrderItem, WorkBatch)
"""

from sqlalchemy import func as sqlfunc
from sqlalchemy.orm import Session, selectinload

from ..models import Order, OrderItem, WorkBatch
from ..utils import iso
from .task_service import task_to_dict


def order_item_to_dict(i: OrderItem, with_tasks: bool = False) -> dict:
    data = {
        "id": i.id,
        "order_id": i.order_id,
        "order_number": i.order.order_number if i.order else None,
        "customer_name": i.order.customer_name if i.order else None,
        "product_name": i.product_name,
        "variant_title": i.variant_title,
        "sku": i.sku,
        "quantity": i.quantity,
        "price": i.price,
        "headphone_material": i.headphone_material,
        "headphone_color": i.headphone_color,
        "product_category": i.product_category,
        "requires_custom_work": bool(i.requires_custom_work),
        "specs": (i.product_data or {}).get("headphone_specs", {}),
        "created_at": iso(i.created_at),
    }
    if with_tasks:
        data["tasks"] = [task_to_dict(t) for t in i.tasks]
    return data


def _batched_item_ids(db: Session) -> set[int]:
    ids: set[int] = set()
    for (item_ids,) in db.query(WorkBatch.order_item_ids).all():
        ids.update(item_ids or [])
    return ids


def list_orders(db: Session, status: str | None = None, limit: int = 100) -> dict:
    if status == "pending":
        batched = _batched_item_ids(db)
        items = db.query(OrderItem).order_by(OrderItem.created_at.desc()).all()
        pending = [order_item_to_dict(i) for i in items if i.id not in batched]
        return {"items": pending[:limit], "count": len(pending)}

    counts = dict(
        db.query(OrderItem.order_id, sqlfunc.count(OrderItem.id))
        .group_by(OrderItem.order_id)
        .all()
    )
    q = db.query(Order)
    if status:
        q = q.filter(Order.status == status)
    orders = q.order_by(Order.created_at.desc()).limit(limit).all()
    return {
        "orders": [
            {
                "id": o.id,
                "shopify_order_id": o.shopify_order_id,
                "order_number": o.order_number,
                "customer_name": o.customer_name,
                "customer_email": o.customer_email,
                "total_price": o.total_price,
                "status": o.status,
                "order_date": iso(o.order_date),
                "item_count": counts.get(o.id, 0),
                "synced_at": iso(o.synced_at),
            }
            for o in orders
        ],
        "count": len(orders),
    }


def order_items_with_tasks(db: Session, limit: int = 200) -> list[dict]:
    items = (
        db.query(OrderItem)
        .options(selectinload(OrderItem.tasks))
        .order_by(OrderItem.created_at.desc())
        .limit(limit)
        .all()
    )
    return [order_item_to_dict(i, with_tasks=True) for i in items]
