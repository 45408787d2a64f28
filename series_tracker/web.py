# series_tracker/web.py
from flask import Blueprint, Response, current_app, jsonify, request
from werkzeug.exceptions import HTTPException
import logging

from series_tracker.repo import RepoError
from series_tracker.service import SeriesService, ValidationError, NotFoundError

logger = logging.getLogger(__name__)

bp = Blueprint("series", __name__, url_prefix="/api/series")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

def register_routes(app, service: SeriesService):
    """
    Register the series blueprint and put the service in app.config.
    Call this once during app creation (run.create_app does this).
    """
    app.config["SERVICE"] = service
    app.register_blueprint(bp)
    logger.debug("Registered blueprint 'series' and injected SERVICE")

def register_cors(app):
    """Allow any origin; answer every preflight with 204 before routing."""
    @app.before_request
    def short_circuit_preflight():
        if request.method == "OPTIONS":
            return Response(status=204)

    @app.after_request
    def add_cors_headers(response):
        response.headers.update(CORS_HEADERS)
        return response

def register_error_handlers(app):
    """Centralized JSON handlers for service, store and framework exceptions."""
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        logger.debug("ValidationError: %s", e)
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        logger.debug("NotFoundError: %s", e)
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(RepoError)
    def handle_repo_error(e):
        logger.error("Store error on %s %s: %s", request.method, request.path, e)
        return jsonify({"error": str(e)}), 500

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.exception("Unhandled exception on %s %s", request.method, request.path)
        return jsonify({"error": str(e)}), 500

# helper to get service instance
def current_service() -> SeriesService:
    return current_app.config["SERVICE"]

def json_body():
    # decoded even without a JSON content type; None when the body is not valid JSON
    return request.get_json(force=True, silent=True)

# -----------------------
# Collection
# -----------------------
@bp.route("", methods=["GET"])
def list_series():
    return jsonify([s.to_dict() for s in current_service().list_series()])

@bp.route("", methods=["POST"])
def create_series():
    created = current_service().create_series(json_body())
    return jsonify(created.to_dict()), 201

# -----------------------
# Single series
# -----------------------
@bp.route("/<series_id>", methods=["GET"])
def get_series(series_id):
    return jsonify(current_service().get_series(series_id).to_dict())

@bp.route("/<series_id>", methods=["PUT"])
def update_series(series_id):
    current_service().replace_series(series_id, json_body())
    return jsonify({"message": "Series updated successfully"})

@bp.route("/<series_id>", methods=["DELETE"])
def delete_series(series_id):
    current_service().delete_series(series_id)
    return jsonify({"message": "Series deleted successfully"})

# -----------------------
# Convenience mutations
# -----------------------
@bp.route("/<series_id>/status", methods=["PATCH"])
def update_status(series_id):
    current_service().update_status(series_id, json_body())
    return jsonify({"message": "Status updated successfully"})

@bp.route("/<series_id>/episode", methods=["PATCH"])
def increment_episode(series_id):
    current_service().increment_episode(series_id)
    return jsonify({"message": "Episode incremented successfully"})

@bp.route("/<series_id>/upvote", methods=["PATCH"])
def upvote_series(series_id):
    current_service().upvote(series_id)
    return jsonify({"message": "Score increased successfully"})

@bp.route("/<series_id>/downvote", methods=["PATCH"])
def downvote_series(series_id):
    current_service().downvote(series_id)
    return jsonify({"message": "Score decreased successfully"})
