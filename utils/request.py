from __future__ import annotations

from typing import Optional

from flask import current_app, request as flask_request

from utils.sessions import DeviceContext


def resolve_client_ip(req=None, trust_proxy: Optional[bool] = None) -> Optional[str]:
    """First X-Forwarded-For hop when proxies are trusted, else the socket peer."""
    req = req or flask_request
    if trust_proxy is None:
        trust_proxy = bool(current_app.config.get("TRUST_PROXY"))
    if trust_proxy and req.access_route:
        return req.access_route[0]
    return req.remote_addr


def device_context(req=None) -> DeviceContext:
    req = req or flask_request
    return DeviceContext(
        user_agent=req.headers.get("User-Agent"),
        ip_address=resolve_client_ip(req),
    )
