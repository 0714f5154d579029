"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — dependency status (database, store, provider)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from compliance_engine.ai.gateway import resolve_active_config
from compliance_engine.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Key-value store ──────────────────────────────────────────────
    checks["kv_store"] = {"status": "ok", "backend": current_app.config.get("KV_STORE_BACKEND")}

    # ── Provider (configuration only, no network call) ───────────────
    from compliance_engine.blueprints.decision_bp import get_store
    try:
        cfg = resolve_active_config(get_store())
        checks["provider"] = {
            "status": "configured" if cfg.has_credentials else "fallback_only",
            "provider": cfg.provider,
            "model": cfg.model,
        }
    except Exception as exc:
        # Rule-based fallback keeps working without a provider
        checks["provider"] = {"status": "error", "detail": str(exc)}

    checks["app"] = {
        "name": "Contractor Compliance Decision Engine",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
