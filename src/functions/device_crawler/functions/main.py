"""HTTP control API for the device crawler supervisor."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import flask
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

# Ensure project root is available on import path
project_root = Path(__file__).parent.parent.parent.parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.device_crawler.core.contracts import DeviceTask
from src.functions.device_crawler.core.scheduling import TaskSupervisor

logger = logging.getLogger(__name__)

DeviceLookup = Callable[[str], Optional[DeviceTask]]


def create_app(supervisor: TaskSupervisor, device_lookup: Optional[DeviceLookup] = None) -> flask.Flask:
    """
    Build the control API around a running supervisor.

    Args:
        supervisor: Supervisor owning the device tasks
        device_lookup: Resolves a device id to its configuration; used when
            restart or run requests carry no device body

    Returns:
        Flask application
    """
    app = flask.Flask(__name__)
    known: dict[str, DeviceTask] = {}

    def resolve(device_id: str) -> Optional[DeviceTask]:
        if device_id in known:
            return known[device_id]
        state = supervisor.get_state(device_id)
        if state is not None:
            return state.device
        return device_lookup(device_id) if device_lookup else None

    @app.get("/health")
    def health() -> flask.Response:
        return _json_response({"status": "healthy", "module": "device_crawler"})

    @app.get("/tasks")
    def list_tasks() -> flask.Response:
        return _json_response({"tasks": supervisor.snapshot()})

    @app.post("/tasks")
    def add_task() -> flask.Response:
        payload = flask.request.get_json(silent=True)
        if not isinstance(payload, dict):
            return _error_response("Request body must be a JSON device object", status=400)
        try:
            device = DeviceTask.model_validate(payload)
        except ValidationError as exc:
            return _error_response(f"Invalid device: {exc.errors(include_url=False)}", status=400)

        supervisor.add_task(device)
        known[device.device_id] = device
        logger.info("Task for device %s added through API", device.device_id)
        return _json_response({"status": "created", "device_id": device.device_id}, status=201)

    @app.post("/tasks/<device_id>/stop")
    def stop_task(device_id: str) -> flask.Response:
        stopped = supervisor.stop_task(device_id)
        return _json_response({"device_id": device_id, "stopped": stopped})

    @app.post("/tasks/<device_id>/restart")
    def restart_task(device_id: str) -> flask.Response:
        payload = flask.request.get_json(silent=True)
        if isinstance(payload, dict) and payload:
            payload.setdefault("device_id", device_id)
            try:
                device = DeviceTask.model_validate(payload)
            except ValidationError as exc:
                return _error_response(f"Invalid device: {exc.errors(include_url=False)}", status=400)
            if device.device_id != device_id:
                return _error_response("device_id in body does not match the URL", status=400)
        else:
            device = resolve(device_id)
            if device is None:
                return _error_response(f"Unknown device: {device_id}", status=404)

        supervisor.restart_task(device)
        known[device_id] = device
        return _json_response({"status": "restarted", "device_id": device_id})

    @app.post("/tasks/<device_id>/run")
    def run_now(device_id: str) -> flask.Response:
        device = resolve(device_id)
        if device is None:
            return _error_response(f"Unknown device: {device_id}", status=404)
        report = supervisor.run_once(device)
        return _json_response(report.model_dump(mode="json"))

    @app.errorhandler(Exception)
    def handle_error(exc: Exception) -> flask.Response:
        if isinstance(exc, HTTPException):
            return _error_response(exc.description or exc.name, status=exc.code or 500)
        logger.exception("Unhandled error in control API")
        return _error_response(str(exc), status=500)

    return app


def _json_response(body: dict[str, Any] | Iterable[Any], status: int = 200) -> flask.Response:
    response = flask.make_response(json.dumps(body, ensure_ascii=False, default=str), status)
    response.headers["Content-Type"] = "application/json"
    return response


def _error_response(message: str, status: int) -> flask.Response:
    return _json_response({"status": "error", "message": message}, status=status)
