"""Origin allow-list for file responses.

File links are embedded by frontends on other origins (images, PDFs), so the
serving routes answer CORS themselves instead of relying on the API-wide
Flask-CORS policy:

- localhost / 127.0.0.1 on any port, the configured domain and its
  subdomains, and any HTTPS origin are echoed back with credentials
- anything else, or a request without an Origin header, gets ``*``
"""
from __future__ import annotations

from flask import current_app, request


def origin_allowed(origin: str, domain: str | None) -> bool:
    if "localhost" in origin or "127.0.0.1" in origin:
        return True
    if domain:
        domain = domain.strip().lstrip(".").lower()
        o = origin.lower()
        if (
            o.endswith("." + domain)
            or o == f"https://{domain}"
            or o == f"https://www.{domain}"
        ):
            return True
    return origin.startswith("https://")


def apply_cors_headers(
    response,
    methods: str = "GET, OPTIONS",
    headers: str = "Origin, X-Requested-With, Content-Type, Accept",
    preflight: bool = False,
):
    origin = request.headers.get("Origin")
    domain = current_app.config.get("CORS_ALLOWED_DOMAIN")
    if origin and origin_allowed(origin, domain):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.vary.add("Origin")
    else:
        response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = methods
    response.headers["Access-Control-Allow-Headers"] = headers
    if preflight:
        response.headers["Access-Control-Max-Age"] = "86400"
    return response
