"""Read-only HTTP status surface for external monitoring."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from werkzeug.serving import make_server

from .models import AvailabilitySnapshot, Location
from .store import AvailabilityStore

logger = logging.getLogger(__name__)


def _location_entry(location: Location,
                    snapshot: Optional[AvailabilitySnapshot]) -> Dict[str, Any]:
    return {
        "id": location.store_id,
        "name": location.name,
        "available": snapshot.available if snapshot else None,
        "slotCount": snapshot.slot_count if snapshot else None,
        "lastChecked": snapshot.observed_at.isoformat() if snapshot else None,
    }


def create_app(store: AvailabilityStore, health_window: dt.timedelta) -> Flask:
    """Create the status application bound to ``store``."""
    app = Flask(__name__)

    @app.get("/status")
    def status():
        snapshots = store.snapshot()
        last_cycle = store.last_cycle
        last_success = store.last_success_at
        return jsonify({
            "locations": [
                _location_entry(location, snapshots.get(location.store_id))
                for location in store.locations
            ],
            "lastCycle": last_cycle.to_dict() if last_cycle else None,
            "lastSuccessAt": last_success.isoformat() if last_success else None,
            "healthy": store.is_healthy(health_window),
        })

    @app.get("/status/<store_id>")
    def location_status(store_id: str):
        for location in store.locations:
            if location.store_id == store_id:
                return jsonify(_location_entry(location, store.get(store_id)))
        return jsonify({"error": f"unknown location {store_id}"}), 404

    @app.get("/availability/<zip_code>")
    def availability_by_zip(zip_code: str):
        snapshots = store.snapshot()
        entries = []
        for location in store.locations:
            if location.zip_code != zip_code:
                continue
            snapshot = snapshots.get(location.store_id)
            entries.append({
                "id": location.store_id,
                "address": location.address,
                "zip": location.zip_code,
                "phone": location.phone,
                "available": snapshot.available if snapshot else None,
                "lastChecked": (
                    snapshot.observed_at.isoformat() if snapshot else None
                ),
            })
        if not entries:
            return jsonify({"error": f"no locations for zip {zip_code}"}), 404
        return jsonify(entries)

    @app.get("/healthz")
    def healthz():
        if store.is_healthy(health_window):
            return jsonify({"status": "ok"})
        return jsonify({"status": "degraded"}), 503

    return app


class StatusServer:
    """Serve the status application from a background thread."""

    def __init__(self, app: Flask, host: str = "0.0.0.0", port: int = 8080):
        self._server = make_server(host, port, app, threaded=True)
        self._thread = threading.Thread(target=self._server.serve_forever,
                                        name="status-server",
                                        daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_port

    def start(self) -> None:
        logger.info("Status server listening on port %d", self.port)
        self._thread.start()

    def stop(self) -> None:
        if self._thread.is_alive():
            self._server.shutdown()
            self._thread.join(timeout=5)
        self._server.server_close()
        logger.info("Status server stopped")


__all__ = ["StatusServer", "create_app"]
