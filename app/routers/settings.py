"""
routers/settings.py — Headphone model list and Shopify connection settings

Business Rules:
- Supervisors can read the model list; only managers change settings
- The Shopify access token is never returned unmasked
- Connection test failures come back as {"success": false, "error": ...}

Called by: main.py (router mount)
Depends on: services/settings_service, services/shopify_sync
"""

from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy.orm import Session

from ..connectors.shopify import ShopifyError
from ..database import get_db
from ..dependencies import require_manager, require_supervisor, require_worker, unwrap
from ..models import Worker
from ..schemas.settings import HeadphoneModelsUpdate, ShopifyConfigUpdate
from ..services import settings_service
from ..services.shopify_sync import check_connection, get_connector, last_sync
from ..utils import iso

router = APIRouter(tags=["settings"])


@router.get("/api/settings/headphone-models")
def get_models(user: Worker = Depends(require_supervisor), db: Session = Depends(get_db)):
    return {"models": settings_service.get_headphone_models(db)}


@router.post("/api/settings/headphone-models")
def save_models(
    body: HeadphoneModelsUpdate,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    result = unwrap(settings_service.save_headphone_models(db, body.models, user.email))
    logger.info("Headphone models updated by {}: {}", user.email, result["models"])
    return {"success": True, **result}


@router.get("/api/settings/shopify")
def get_shopify(user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    return settings_service.get_shopify_config_masked(db)


@router.post("/api/settings/shopify")
def save_shopify(
    body: ShopifyConfigUpdate,
    user: Worker = Depends(require_manager),
    db: Session = Depends(get_db),
):
    result = unwrap(settings_service.save_shopify_config(db, body.model_dump(), user.email))
    logger.info("Shopify settings updated by {} for {}", user.email, result.get("store_domain"))
    return {"success": True, "config": result}


@router.post("/api/settings/shopify/test")
async def test_shopify(user: Worker = Depends(require_manager), db: Session = Depends(get_db)):
    try:
        connector = get_connector(db)
        return await check_connection(connector)
    except ShopifyError as e:
        logger.warning("Shopify connection test failed: {}", e)
        return {"success": False, "error": str(e)}


@router.get("/api/settings/shopify/status")
def shopify_status(user: Worker = Depends(require_worker), db: Session = Depends(get_db)):
    cfg = settings_service.get_shopify_config(db)
    sync = last_sync(db)
    return {
        "configured": bool(cfg.get("store_domain") and cfg.get("api_access_token")),
        "sync_enabled": bool(cfg.get("sync_enabled")),
        "store_domain": cfg.get("store_domain") or None,
        "last_sync": (
            {
                "action": sync.action,
                "status": sync.status,
                "started_at": iso(sync.started_at),
                "error": sync.error_message,
            }
            if sync
            else None
        ),
    }
