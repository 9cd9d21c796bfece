"""HTTP trigger blueprint — health check and manual migration endpoints."""

import json
import logging

import azure.functions as func

from drive_transfer import __version__
from drive_transfer.config import ConfigurationError, instance_names
from drive_transfer.orchestration.runner import run_instances

logger = logging.getLogger(__name__)

bp = func.Blueprint()


@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint.

    Returns service status and version.
    """
    logger.info("[health_check] health check requested")

    try:
        body = json.dumps({"status": "ok", "version": __version__})
        return func.HttpResponse(body, status_code=200, mimetype="application/json")

    except Exception:
        logger.error("[health_check] health check failed", exc_info=True)
        error_body = json.dumps({"status": "error", "message": "Internal server error"})
        return func.HttpResponse(error_body, status_code=500, mimetype="application/json")


@bp.route(route="trigger", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def manual_trigger(req: func.HttpRequest) -> func.HttpResponse:
    """Manual trigger endpoint — runs every configured instance on demand.

    Requires a function key for authentication. The Google token must
    already be present in each instance's data directory, since no browser
    is available to authorize interactively.

    Responds 200 when at least one instance completed, otherwise 500. The
    body carries the status of each instance.
    """
    logger.info("[manual_trigger] manual trigger requested")

    try:
        names = instance_names()
    except ConfigurationError as exc:
        logger.error("[manual_trigger] invalid configuration; detail:%s", exc)
        error_body = json.dumps({"status": "error", "message": "Invalid configuration"})
        return func.HttpResponse(error_body, status_code=500, mimetype="application/json")

    try:
        outcomes = run_instances(names)
        body = json.dumps(
            {
                "status": "ok" if all(outcome.ok for outcome in outcomes) else "error",
                "instances": [outcome.to_dict() for outcome in outcomes],
            }
        )
        status_code = 200 if any(outcome.ok for outcome in outcomes) else 500
        return func.HttpResponse(body, status_code=status_code, mimetype="application/json")

    except Exception:
        logger.error("[manual_trigger] manual trigger failed", exc_info=True)
        error_body = json.dumps({"status": "error", "message": "Internal server error"})
        return func.HttpResponse(error_body, status_code=500, mimetype="application/json")
