# Overview: Shared JSON response helpers for blueprints.

from flask import jsonify, request

from ..services.results import AuthErrorCode


def result_response(result):
    """Serialize an AuthResult with its mapped HTTP status."""
    response = jsonify(result.to_dict())
    if result.error == AuthErrorCode.ACCOUNT_LOCKED and result.retry_after_seconds:
        response.headers["Retry-After"] = str(result.retry_after_seconds)
    return response, result.http_status


def unavailable_response(message: str = "Service temporarily unavailable, please try again"):
    return jsonify({
        "success": False,
        "code": AuthErrorCode.AUTHENTICATION_UNAVAILABLE,
        "error": message,
    }), 503


def validation_response(message: str):
    return jsonify({"success": False, "code": AuthErrorCode.VALIDATION_ERROR, "error": message}), 400


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def client_context() -> dict:
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }
