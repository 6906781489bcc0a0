"""
Security headers middleware.

The engine serves JSON only, so the Content-Security-Policy is locked down
completely.  Also sets X-Content-Type-Options, X-Frame-Options,
Strict-Transport-Security and Referrer-Policy on every response.

Usage:
    from governance_engine.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault(
            "Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'"
        )
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.pop("Server", None)
        return response
