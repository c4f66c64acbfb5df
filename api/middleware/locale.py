"""Resolve the response language: ?lang= > X-Lang > Accept-Language > en."""
from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.i18n import negotiate_locale, normalize_locale, set_locale


class LocaleMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        explicit = request.query_params.get("lang") or request.headers.get("X-Lang")
        locale = normalize_locale(explicit) if explicit else negotiate_locale(request.headers.get("Accept-Language"))
        set_locale(locale)
        request.state.locale = locale
        return await call_next(request)
