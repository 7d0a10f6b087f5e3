"""
Provisioning routes — REST endpoints that drive the sessions.

All endpoints return JSON. Grouped under the /api/ prefix.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from mailplane import __version__
from mailplane.core.context import ProvisioningContext
from mailplane.core.errors import InvalidInputError
from mailplane.ui.web.auth import require_admin

logger = logging.getLogger(__name__)

provision_bp = Blueprint("provision", __name__)


def _ctx() -> ProvisioningContext:
    return current_app.config["MAILPLANE_CONTEXT"]


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInputError("Invalid or missing JSON body")
    return data


def _flag(data: dict[str, Any], key: str, default: bool = False) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise InvalidInputError(f"'{key}' must be true or false")
    return value


# ── Health ───────────────────────────────────────────────────────────


@provision_bp.route("/health")
def api_health():  # type: ignore[no-untyped-def]
    return jsonify({"status": "ok", "version": __version__})


# ── Services ─────────────────────────────────────────────────────────


@provision_bp.route("/services/enable", methods=["POST"])
@require_admin
def api_services_enable():  # type: ignore[no-untyped-def]
    """Enable and start services: ``{"services": {"postfix": true}}``."""
    from mailplane.core.use_cases.services import enable_services

    data = _json_body()
    result = enable_services(_ctx(), data.get("services"))
    return jsonify(result.to_dict())


@provision_bp.route("/services", methods=["GET"])
def api_services_status():  # type: ignore[no-untyped-def]
    from mailplane.core.use_cases.services import service_statuses

    return jsonify({"services": [s.to_dict() for s in service_statuses(_ctx())]})


@provision_bp.route("/services/action", methods=["POST"])
@require_admin
def api_services_action():  # type: ignore[no-untyped-def]
    """Start, stop or restart one service: ``{"service": "postfix", "action": "restart"}``."""
    from mailplane.core.use_cases.services import service_action

    data = _json_body()
    result = service_action(_ctx(), data.get("service"), data.get("action"))
    return jsonify(result.to_dict())


# ── Webmail ──────────────────────────────────────────────────────────


@provision_bp.route("/webmail", methods=["GET"])
def api_webmail_status():  # type: ignore[no-untyped-def]
    from mailplane.core.use_cases.webmail import webmail_status

    return jsonify(webmail_status(_ctx()))


@provision_bp.route("/webmail", methods=["POST"])
@require_admin
def api_webmail_setup():  # type: ignore[no-untyped-def]
    """Install Roundcube: ``{"domain", "adminEmail", "reconfigure"?}``."""
    from mailplane.core.use_cases.webmail import setup_webmail

    data = _json_body()
    result = setup_webmail(
        _ctx(),
        data.get("domain"),
        data.get("adminEmail"),
        reconfigure=_flag(data, "reconfigure"),
    )
    return jsonify(result.to_dict()), 201


# ── DNS ──────────────────────────────────────────────────────────────


@provision_bp.route("/dns/forward", methods=["POST"])
@require_admin
def api_dns_forward():  # type: ignore[no-untyped-def]
    """Set up unbound forwarding: ``{"forwarders"?, "restartPostfix"?, "reconfigure"?}``."""
    from mailplane.core.use_cases.dns_forward import setup_dns_forwarding

    data = request.get_json(silent=True)
    if data is None and not request.data:
        data = {}
    if not isinstance(data, dict):
        raise InvalidInputError("Invalid JSON body")

    result = setup_dns_forwarding(
        _ctx(),
        forwarders=data.get("forwarders"),
        restart_postfix=_flag(data, "restartPostfix", default=True),
        reconfigure=_flag(data, "reconfigure"),
    )
    return jsonify(result.to_dict()), 201


# ── Locks ────────────────────────────────────────────────────────────


@provision_bp.route("/locks")
@require_admin
def api_locks():  # type: ignore[no-untyped-def]
    locks = _ctx().locks
    return jsonify({
        "locks": [
            {
                "name": record.path.rsplit("/", 1)[-1],
                "pid": record.pid,
                "acquiredAtMs": record.acquired_at_ms,
                "stale": locks.is_stale(record),
            }
            for record in locks.list_locks()
        ],
    })


# ── Audit ────────────────────────────────────────────────────────────


@provision_bp.route("/audit")
@require_admin
def api_audit():  # type: ignore[no-untyped-def]
    """Recent sessions from the audit ledger: ``?n=20&kind=webmail_setup``."""
    audit = _ctx().audit
    n = request.args.get("n", 20, type=int)
    entries = audit.read_recent(n, kind=request.args.get("kind") or None)
    return jsonify({
        "total": audit.entry_count(),
        "entries": [e.model_dump(mode="json") for e in entries],
    })
