"""Settings service — system_config key/value store with an in-memory cache.

Business Rules:
- Values are JSON; reads go through a 5-minute cache (disabled under TESTING)
- Writes invalidate the cache immediately
- headphone_models: trimmed, non-empty list; defaults to the current model line
- shopify_config: access token and webhook secret encrypted at rest, masked on read

Called by: routers/settings.py, services/shopify_sync.py, connectors/shopify.py, startup.py
Depends on: models (SystemConfig), services/credential_service.py
"""

import logging
import os
import time
from typing import Any

from sqlalchemy.orm import Session

from ..config import settings
from ..models import SystemConfig
from .credential_service import encrypt_value, is_masked, mask_value, try_decrypt

log = logging.getLogger(__name__)

HEADPHONE_MODELS_KEY = "headphone_models"
SHOPIFY_CONFIG_KEY = "shopify_config"

DEFAULT_HEADPHONE_MODELS = ["Caldera", "Auteur", "Atticus", "Aeon", "Eikon", "Aeolus", "Verite"]

DEFAULT_SHOPIFY_CONFIG = {
    "store_domain": "",
    "api_access_token": "",
    "api_version": "2024-01",
    "webhook_secret": "",
    "sync_enabled": False,
    "sync_interval_minutes": 15,
}

_SECRET_FIELDS = ("api_access_token", "webhook_secret")


# ── Generic config (with in-memory cache) ───────────────────────────

_config_cache: dict[str, Any] = {}
_config_cache_ts: float = 0
_CONFIG_CACHE_TTL = 0 if os.environ.get("TESTING") else 300  # 5 minutes


def _load_config_cache(db: Session) -> dict[str, Any]:
    global _config_cache, _config_cache_ts
    rows = db.query(SystemConfig).all()
    _config_cache = {r.key: r.value for r in rows}
    _config_cache_ts = time.time()
    return _config_cache


def clear_config_cache() -> None:
    global _config_cache, _config_cache_ts
    _config_cache = {}
    _config_cache_ts = 0


def get_config_value(db: Session, key: str, default: Any = None) -> Any:
    """Get a single config value with in-memory caching (5-min TTL)."""
    if time.time() - _config_cache_ts >= _CONFIG_CACHE_TTL or not _config_cache:
        _load_config_cache(db)
    value = _config_cache.get(key)
    return default if value is None else value


def set_config_value(
    db: Session, key: str, value: Any, updated_by: str, description: str | None = None
) -> SystemConfig:
    """Create or update a config row and invalidate the cache."""
    row = db.query(SystemConfig).filter_by(key=key).first()
    if row is None:
        row = SystemConfig(key=key, value=value, description=description)
        db.add(row)
    else:
        row.value = value
        if description:
            row.description = description
    row.updated_by = updated_by
    db.commit()
    clear_config_cache()
    log.info("Config %s updated by %s", key, updated_by)
    return row


def get_config_meta(db: Session, key: str) -> SystemConfig | None:
    return db.query(SystemConfig).filter_by(key=key).first()


# ── Headphone models ────────────────────────────────────────────────


def get_headphone_models(db: Session) -> list[str]:
    models = get_config_value(db, HEADPHONE_MODELS_KEY)
    if not isinstance(models, list) or not models:
        return list(DEFAULT_HEADPHONE_MODELS)
    return [str(m) for m in models]


def get_headphone_models_lower(db: Session) -> list[str]:
    return [m.lower() for m in get_headphone_models(db)]


def save_headphone_models(db: Session, models: list[str], updated_by: str) -> dict:
    cleaned = [m.strip() for m in models if isinstance(m, str) and m.strip()]
    if not cleaned:
        return {"error": "At least one headphone model is required", "status": 400}
    set_config_value(
        db, HEADPHONE_MODELS_KEY, cleaned, updated_by,
        description="Model names used to recognise headphones in Shopify orders",
    )
    return {"models": cleaned}


# ── Shopify config ──────────────────────────────────────────────────


def _env_shopify_config() -> dict:
    cfg = dict(DEFAULT_SHOPIFY_CONFIG)
    cfg["store_domain"] = settings.shopify_store_domain
    cfg["api_access_token"] = settings.shopify_access_token
    cfg["api_version"] = settings.shopify_api_version or "2024-01"
    return cfg


def get_shopify_config(db: Session) -> dict:
    """Decrypted Shopify config. Stored row wins; env settings are the fallback."""
    stored = get_config_value(db, SHOPIFY_CONFIG_KEY)
    if not isinstance(stored, dict) or not stored.get("store_domain"):
        return _env_shopify_config()
    cfg = {**DEFAULT_SHOPIFY_CONFIG, **stored}
    for field in _SECRET_FIELDS:
        cfg[field] = try_decrypt(stored.get(field))
    return cfg


def get_shopify_config_masked(db: Session) -> dict:
    cfg = get_shopify_config(db)
    for field in _SECRET_FIELDS:
        cfg[field] = mask_value(cfg.get(field) or "")
    cfg["configured"] = bool(cfg.get("store_domain") and cfg.get("api_access_token"))
    return cfg


def normalize_store_domain(domain: str) -> str:
    domain = domain.strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


def save_shopify_config(db: Session, body: dict, updated_by: str) -> dict:
    """Validate and store Shopify config. Masked secrets keep the stored value."""
    domain = normalize_store_domain(body.get("store_domain") or "")
    token = (body.get("api_access_token") or "").strip()
    if not domain or not token:
        return {"error": "Store domain and access token are required", "status": 400}

    current = get_shopify_config(db)
    stored = {
        "store_domain": domain,
        "api_version": (body.get("api_version") or "2024-01").strip(),
        "sync_enabled": bool(body.get("sync_enabled", False)),
        "sync_interval_minutes": int(body.get("sync_interval_minutes") or 15),
    }
    for field in _SECRET_FIELDS:
        submitted = (body.get(field) or "").strip()
        plaintext = current.get(field, "") if is_masked(submitted) else submitted
        stored[field] = encrypt_value(plaintext) if plaintext else ""

    set_config_value(db, SHOPIFY_CONFIG_KEY, stored, updated_by,
                     description="Shopify store connection")
    return get_shopify_config_masked(db)
