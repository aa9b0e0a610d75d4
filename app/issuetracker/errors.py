from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """
    Raised by services and guards; rendered as a JSON error envelope by the app error handler.
    """

    def __init__(self, message: str, status: int = 400, details: Any = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details
        self.code = code

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        if self.code:
            body["code"] = self.code
        return body


class ApiErrors:
    """Shortcuts for the common error statuses."""

    @staticmethod
    def unauthorized(message: str = "Unauthorized: Authentication required") -> ApiError:
        return ApiError(message, 401)

    @staticmethod
    def forbidden(message: str = "Forbidden: Insufficient permissions") -> ApiError:
        return ApiError(message, 403)

    @staticmethod
    def not_found(resource: str = "Resource") -> ApiError:
        return ApiError(f"{resource} not found", 404)

    @staticmethod
    def bad_request(message: str = "Bad request", details: Any = None) -> ApiError:
        return ApiError(message, 400, details)

    @staticmethod
    def validation_failed(details: Any, message: str = "Validation failed") -> ApiError:
        return ApiError(message, 400, details)

    @staticmethod
    def conflict(message: str = "Resource conflict") -> ApiError:
        return ApiError(message, 409)

    @staticmethod
    def unprocessable_entity(details: Any = None, message: str = "Validation failed") -> ApiError:
        return ApiError(message, 422, details)

    @staticmethod
    def too_many_requests(message: str = "Rate limit exceeded") -> ApiError:
        return ApiError(message, 429)

    @staticmethod
    def server_error(message: str = "Internal server error") -> ApiError:
        return ApiError(message, 500)


def success_response(data: Any, status: int = 200, message: str = "Success"):
    return jsonify({"success": True, "data": data, "message": message}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status in (401, 403):
            app.logger.warning(
                "Denied (%s): %s request_id=%s", e.status, e.message, getattr(g, "request_id", None)
            )
        return jsonify(e.to_response()), e.status

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return jsonify({"success": False, "error": "Request body too large"}), 413

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"success": False, "error": e.description or e.name}), e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"success": False, "error": "Internal server error"}), 500
