# Overview: Request decorators for API routes (provider session + role checks).

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, authorization_service
from .services.authorization_service import AccessDeniedError
from .services.results import AuthErrorCode
from .services.session_provider import ProviderUnavailableError
from .validation import KIND_STAFF


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return hasattr(g, "principal")


def require_auth(f):
    """
    Require a valid provider session mapped to an active internal identity.

    Sets on flask.g:
    - g.principal: resolved Principal (role read from role_assignments)
    - g.identity: StaffIdentity or CustomerIdentity row
    - g.access_token: the bearer token

    Returns 401 for a missing/invalid token, 403 when the identity has been
    deactivated (or a customer is no longer approved), 503 when the session
    provider cannot be reached.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        try:
            result, context = session_service.resolve_session(token)
        except ProviderUnavailableError:
            return jsonify({
                "error": "Authentication service unavailable, please try again",
                "code": AuthErrorCode.AUTHENTICATION_UNAVAILABLE,
            }), 503

        if not result.ok:
            return jsonify(result.to_dict()), result.http_status

        g.principal = context.principal
        g.identity = context.identity
        g.access_token = context.access_token

        return f(*args, **kwargs)

    return decorated_function


def require_staff_role(*roles: str):
    """Require a staff principal holding one of roles (from role_assignments)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            principal = g.principal
            if principal.kind != KIND_STAFF or principal.role not in roles:
                authorization_service.log_security_event(
                    actor_id=principal.identity_id,
                    actor_kind=principal.kind,
                    event_type="ACCESS_DENIED",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=f"Requires role: {', '.join(roles)}",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": AuthErrorCode.UNAUTHORIZED,
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_access(resource: str, operation: str):
    """
    Gate a route on (resource, operation) for the current principal.

    Routes for customer-scoped resources pass the record's customer id via
    the "customer_id" URL parameter.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                authorization_service.require_access(
                    g.principal,
                    resource,
                    operation,
                    kwargs.get("customer_id"),
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except AccessDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "code": AuthErrorCode.UNAUTHORIZED,
                    "resource": resource,
                    "operation": operation,
                    "message": str(e),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
