import secrets

from flask import Request, jsonify, request, session

CSRF_HEADER = "X-CSRF-Token"
UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Provider webhooks authenticate with an HMAC signature instead of a session.
CSRF_EXEMPT_ENDPOINTS = frozenset({"esign.provider_callback"})
UNGUARDED_PATH_PREFIXES = ("/static/", "/health", "/healthz")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def _submitted_token(req: Request) -> str | None:
    token = req.headers.get(CSRF_HEADER) or req.form.get("csrf_token")
    if token or not req.is_json:
        return token
    body = req.get_json(silent=True)
    return body.get("csrf_token") if isinstance(body, dict) else None


def validate_csrf(req: Request) -> bool:
    token = _submitted_token(req)
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def csrf_guard():
    """
    ``before_request`` hook.

    Every session gets a token; unsafe methods must echo it back. ``auth.*`` endpoints
    pass through because the login response is what hands the token out.
    """
    if request.path.startswith(UNGUARDED_PATH_PREFIXES):
        return None
    endpoint = request.endpoint or ""
    if endpoint in CSRF_EXEMPT_ENDPOINTS:
        return None
    ensure_csrf_token()
    session.permanent = True
    if request.method not in UNSAFE_METHODS or endpoint.startswith("auth."):
        return None
    if not validate_csrf(request):
        return jsonify({"error": "csrf_failed", "message": "CSRF token missing or invalid."}), 400
    return None
