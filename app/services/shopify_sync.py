"""
shopify_sync.py — Shopify order review and selective import into production.

Orders are never imported automatically: managers fetch recent orders for
review, then import chosen line items. Import creates the order, its order
items and the work tasks each product category needs.

Business Rules:
- Line item specs come from Globo option properties first, then the variant title
- $0 line items are Globo "components" (spec carriers) and never become order items
- Main items are headphones with price > 0; everything else is an extra item
- Orders are upserted by shopify_order_id, order items by shopify_line_item_id
- A task type is never created twice for the same order item
- Custom work (engraving) raises task priority to high and hours by 1.5x

Called by: routers/shopify.py
Depends on: connectors/shopify.py, services/settings_service.py, models
"""

import re
import time
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.shopify import ShopifyConnector, ShopifyError
from ..models import Order, OrderItem, SyncLog, Worker, WorkTask
from ..utils import safe_float
from .settings_service import get_headphone_models_lower, get_shopify_config

WOOD_TYPES = ["Zebra", "Cocobolo", "Padauk", "Cherry", "Walnut", "Bocote", "Maple", "Oak", "Mahogany"]
MATERIALS = ["Aluminum", "Aluminium", "Wood", "Carbon", "Steel", "Titanium", "Plastic"]
COLORS = ["Black", "Silver", "Natural", "White", "Red", "Blue", "Gold"]
PAD_TYPES = ["Vegan", "Leather", "Velour", "Cloth", "Perforated", "Vented", "Solid", "Suede"]
CABLE_TYPES = ["1/4", "3.5mm", "XLR", "USB-C", "Lightning", "Balanced"]

_IMPEDANCE_RE = re.compile(r"(\d+)\s?(ohm|Ω|ohms)", re.IGNORECASE)

REQUIRED_TASKS = {
    "headphone": ["sanding", "assembly", "qc", "packaging"],
    "accessory": ["qc", "packaging"],
    "cable": ["assembly", "qc", "packaging"],
    "electronics": ["assembly", "qc", "packaging"],
    "other": ["qc", "packaging"],
}

_ACCESSORY_WORDS = ("pad", "cushion", "cable", "cord", "strap", "headband")


# ── Spec parsing ─────────────────────────────────────────────────────


def determine_product_category(product_name: str, price: float, models: list[str]) -> str:
    name = (product_name or "").lower()
    if price == 0:
        return "component"
    if any(w in name for w in _ACCESSORY_WORDS):
        return "accessory"

    is_model = any(
        f"{m} headphone" in name
        or f"{m}headphone" in name
        or (m in name and "headphone" in name)
        or name == m
        for m in models
    )
    is_generic = "headphone" in name and not any(
        w in name for w in ("pad", "cushion", "cable", "strap")
    )
    if is_model or is_generic:
        return "headphone"
    if "amp" in name or "dac" in name:
        return "electronics"
    return "other"


def parse_headphone_specs(line_item: dict, models: list[str]) -> dict:
    """Pull wood, material, colour, pads, cable, engraving and impedance out of a line item."""
    variant_title = line_item.get("variant_title") or ""
    product_name = line_item.get("title") or line_item.get("name") or ""

    specs = {
        "wood_type": None,
        "material": None,
        "color": None,
        "pad_type": None,
        "cable_type": None,
        "finish": None,
        "driver_type": None,
        "impedance": None,
        "custom_engraving": None,
        "bundle_component": False,
    }

    for prop in line_item.get("properties") or []:
        key = (prop.get("name") or "").lower()
        value = prop.get("value") or ""
        if "wood" in key or key == "select-24":
            specs["wood_type"] = value
        if "chassis" in key or "frame material" in key:
            specs["material"] = value
        if "pad" in key or "cushion" in key:
            specs["pad_type"] = value
        if "cable" in key or "cord" in key:
            specs["cable_type"] = value
        if "engraving" in key or "personalization" in key:
            specs["custom_engraving"] = value
        if "bundle" in key or "biscuits" in key:
            specs["bundle_component"] = True
        if "color" in key or "finish" in key:
            specs["color"] = value
        if key and value and not key.startswith("_"):
            specs[re.sub(r"\s+", "_", key)] = value

    for part in (p.strip() for p in variant_title.split(" / ")):
        upper = part.upper()
        if not specs["wood_type"]:
            for wood in WOOD_TYPES:
                if wood.upper() in upper:
                    specs["wood_type"] = wood
        if not specs["material"]:
            for material in MATERIALS:
                if material.upper() in upper:
                    specs["material"] = material
        if not specs["color"]:
            for color in COLORS:
                if color.upper() in upper:
                    specs["color"] = color
        if not specs["pad_type"]:
            for pad in PAD_TYPES:
                if pad.upper() in upper:
                    specs["pad_type"] = pad
        if not specs["cable_type"]:
            for cable in CABLE_TYPES:
                if cable in part:
                    specs["cable_type"] = cable
        match = _IMPEDANCE_RE.search(part)
        if match and not specs["impedance"]:
            specs["impedance"] = f"{match.group(1)}Ω"

    category = determine_product_category(
        product_name, safe_float(line_item.get("price"), 0.0), models
    )
    specs["product_category"] = category
    specs["requires_assembly"] = category == "headphone"
    specs["requires_custom_work"] = bool(specs["custom_engraving"])
    return specs


# ── Task planning ────────────────────────────────────────────────────


def get_required_tasks(product_category: str) -> list[str]:
    return list(REQUIRED_TASKS.get(product_category, REQUIRED_TASKS["other"]))


def get_estimated_hours(task_type: str, product_category: str, has_custom_work: bool) -> float:
    is_headphone = product_category == "headphone"
    base = {
        "sanding": 2.0 if is_headphone else 0.5,
        "assembly": 3.0 if is_headphone else 1.0,
        "qc": 0.5,
        "packaging": 0.3,
    }
    hours = base.get(task_type, 1.0)
    return hours * 1.5 if has_custom_work else hours


def generate_task_description(task_type: str, product_name: str, specs: dict) -> str:
    material = specs.get("material")
    if task_type == "sanding":
        return f"Sand and finish {product_name}" + (f" ({material})" if material else "")
    if task_type == "assembly":
        return f"Assemble {product_name}" + (" with custom engraving" if specs.get("custom_engraving") else "")
    if task_type == "qc":
        return f"Quality check {product_name} - verify {material or 'finish'}, fit, and function"
    if task_type == "packaging":
        return f"Package {product_name} for shipment"
    return f"{task_type} for {product_name}"


def generate_task_notes(order_number: str, quantity: int, specs: dict) -> str:
    notes = [f"Order #{order_number}", f"Qty: {quantity}"]
    if specs.get("material"):
        notes.append(f"Material: {specs['material']}")
    if specs.get("color"):
        notes.append(f"Color: {specs['color']}")
    if specs.get("pad_type"):
        notes.append(f"Pads: {specs['pad_type']}")
    if specs.get("cable_type"):
        notes.append(f"Cable: {specs['cable_type']}")
    if specs.get("custom_engraving"):
        notes.append(f'Engraving: "{specs["custom_engraving"]}"')
    if specs.get("impedance"):
        notes.append(f"Impedance: {specs['impedance']}")
    return " | ".join(notes)


# ── Shopify access ───────────────────────────────────────────────────


def get_connector(db: Session) -> ShopifyConnector:
    """Build a connector from stored config. Raises ShopifyError when unconfigured."""
    cfg = get_shopify_config(db)
    if not cfg.get("store_domain") or not cfg.get("api_access_token"):
        raise ShopifyError("Shopify not configured. Please configure in Settings.")
    return ShopifyConnector.from_config(cfg, timeout=settings.shopify_timeout)


def _log_sync(db: Session, action: str, status: str, started: float,
              worker: Worker | None, counts: dict | None = None, error: str | None = None) -> None:
    finished = time.time()
    db.add(SyncLog(
        source="shopify",
        action=action,
        status=status,
        started_at=datetime.fromtimestamp(started, tz=timezone.utc),
        finished_at=datetime.fromtimestamp(finished, tz=timezone.utc),
        duration_seconds=round(finished - started, 3),
        row_counts=counts or {},
        error_message=error,
        triggered_by_id=worker.id if worker else None,
    ))
    db.commit()


def last_sync(db: Session) -> SyncLog | None:
    return (
        db.query(SyncLog)
        .filter(SyncLog.source == "shopify", SyncLog.action.in_(("review", "import")))
        .order_by(SyncLog.started_at.desc())
        .first()
    )


# ── Review ───────────────────────────────────────────────────────────


async def fetch_orders_for_review(
    db: Session, connector: ShopifyConnector, worker: Worker | None = None, limit: int = 50
) -> dict:
    """Recent Shopify orders that still have un-imported line items."""
    started = time.time()
    try:
        orders = await connector.get_orders(limit)
    except ShopifyError as e:
        _log_sync(db, "review", "error", started, worker, error=str(e))
        raise

    models = get_headphone_models_lower(db)
    imported_ids = {
        row[0] for row in
        db.query(OrderItem.shopify_line_item_id)
        .filter(OrderItem.shopify_line_item_id.isnot(None))
        .all()
    }

    enhanced = []
    for order in orders:
        line_items = order.get("line_items") or []
        unimported = [li for li in line_items if li.get("id") not in imported_ids]
        if not unimported:
            continue

        main_items, extra_items, all_items = [], [], []
        for li in unimported:
            specs = parse_headphone_specs(li, models)
            item = {
                **li,
                "headphone_specs": specs,
                "estimated_tasks": get_required_tasks(specs["product_category"]),
            }
            all_items.append(item)
            if specs["product_category"] == "headphone" and safe_float(li.get("price"), 0.0) > 0:
                main_items.append(item)
            else:
                extra_items.append(item)

        enhanced.append({
            **order,
            "_import_status": {
                "has_imported_items": len(line_items) > len(unimported),
                "imported_count": len(line_items) - len(unimported),
                "total_count": len(line_items),
            },
            "main_items": main_items,
            "extra_items": extra_items,
            "line_items": all_items,
        })

    _log_sync(db, "review", "success", started, worker,
              {"orders_fetched": len(orders), "orders_reviewable": len(enhanced)})
    logger.info("Shopify review: {} fetched, {} with un-imported items", len(orders), len(enhanced))
    return {"success": True, "orders": enhanced, "count": len(enhanced)}


# ── Import ───────────────────────────────────────────────────────────


def _customer_name(shopify_order: dict) -> str:
    customer = shopify_order.get("customer") or {}
    name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    return name or "Guest"


def _parse_shopify_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _upsert_order(db: Session, shopify_order: dict) -> Order:
    order = db.query(Order).filter_by(shopify_order_id=shopify_order["id"]).first()
    if order is None:
        order = Order(shopify_order_id=shopify_order["id"])
        db.add(order)
    order.order_number = str(shopify_order.get("order_number") or shopify_order["id"])
    order.customer_name = _customer_name(shopify_order)
    order.customer_email = (shopify_order.get("customer") or {}).get("email")
    order.total_price = safe_float(shopify_order.get("total_price"), 0.0)
    order.order_date = _parse_shopify_date(shopify_order.get("created_at"))
    order.status = "pending"
    order.raw_data = shopify_order
    order.synced_at = datetime.now(timezone.utc)
    db.flush()
    return order


def _upsert_order_item(db: Session, order: Order, line_item: dict, specs: dict) -> OrderItem:
    item = db.query(OrderItem).filter_by(shopify_line_item_id=line_item["id"]).first()
    if item is None:
        item = OrderItem(shopify_line_item_id=line_item["id"])
        db.add(item)
    item.order_id = order.id
    item.product_name = line_item.get("title") or "Unknown Product"
    item.variant_title = line_item.get("variant_title")
    item.quantity = line_item.get("quantity") or 1
    item.price = safe_float(line_item.get("price"), 0.0)
    item.sku = line_item.get("sku")
    item.headphone_material = specs.get("wood_type") or specs.get("material")
    item.headphone_color = specs.get("color")
    item.product_category = specs["product_category"]
    item.requires_custom_work = specs["requires_custom_work"]
    item.product_data = {**line_item, "headphone_specs": specs}
    db.flush()
    return item


async def import_selected_line_items(
    db: Session,
    connector: ShopifyConnector,
    order_id: int,
    line_item_ids: list[int],
    worker: Worker | None = None,
) -> dict:
    """Import chosen line items of one Shopify order and create their tasks."""
    started = time.time()
    try:
        shopify_order = await connector.get_order(order_id)
    except ShopifyError as e:
        _log_sync(db, "import", "error", started, worker, error=str(e))
        raise
    if not shopify_order:
        _log_sync(db, "import", "error", started, worker, error="Order not found in Shopify")
        return {"error": "Order not found in Shopify", "status": 404}

    models = get_headphone_models_lower(db)
    order = _upsert_order(db, shopify_order)
    details: list[str] = []
    items_created = 0
    tasks_created = 0
    line_items = {li.get("id"): li for li in shopify_order.get("line_items") or []}

    for line_item_id in line_item_ids:
        line_item = line_items.get(line_item_id)
        if not line_item:
            details.append(f"Line item {line_item_id} not found")
            continue

        specs = parse_headphone_specs(line_item, models)
        if specs["product_category"] == "component":
            details.append(f"Skipped component: {line_item.get('title')} (specifications only)")
            continue

        item = _upsert_order_item(db, order, line_item, specs)
        items_created += 1
        details.append(f"Imported: {item.product_name} ({specs['product_category']})")

        existing_types = {
            t.task_type for t in db.query(WorkTask).filter_by(order_item_id=item.id).all()
        }
        for task_type in get_required_tasks(specs["product_category"]):
            if task_type in existing_types:
                continue
            db.add(WorkTask(
                order_item_id=item.id,
                task_type=task_type,
                stage=task_type,
                task_description=generate_task_description(task_type, item.product_name, specs),
                status="pending",
                priority="high" if specs["requires_custom_work"] else "normal",
                estimated_hours=get_estimated_hours(
                    task_type, specs["product_category"], specs["requires_custom_work"]
                ),
                notes=generate_task_notes(order.order_number, item.quantity, specs),
            ))
            tasks_created += 1

    db.commit()
    details.append(f"Summary: {items_created} items imported, {tasks_created} tasks created")
    _log_sync(db, "import", "success", started, worker,
              {"items_created": items_created, "tasks_created": tasks_created})
    logger.info(
        "Shopify order #{} imported by {}: {} items, {} tasks",
        order.order_number, worker.email if worker else "system", items_created, tasks_created,
    )
    return {
        "success": True,
        "order_id": order.id,
        "itemsCreated": items_created,
        "tasksCreated": tasks_created,
        "details": details,
    }


async def check_connection(connector: ShopifyConnector) -> dict:
    """Shop name + order count, used by the settings screen's Test button."""
    shop = await connector.get_shop()
    count = await connector.get_order_count()
    return {
        "success": True,
        "shop": {
            "name": shop.get("name"),
            "domain": shop.get("domain") or connector.store_domain,
            "email": shop.get("email"),
            "currency": shop.get("currency"),
        },
        "orderCount": count,
    }
