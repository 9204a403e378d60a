"""
Security headers middleware.

This service only serves JSON, so the policy is the strict API variant:
nothing may be framed, sniffed or loaded from the responses.

Usage:
    from core_service.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

API_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        for name, value in API_HEADERS.items():
            response.headers.setdefault(name, value)

        # HTTPS enforcement (ignored by browsers over plain HTTP)
        if not app.config.get("DEBUG"):
            response.headers.setdefault("Strict-Transport-Security", HSTS_VALUE)

        # Remove server identification
        response.headers.pop("Server", None)
        return response
