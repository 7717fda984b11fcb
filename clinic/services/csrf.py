"""
CSRF tokens kept in the session.

Two kinds of token live side by side:

* the session token, created at login and checked with a constant-time
  comparison on every state-changing request.  It is reusable for the
  lifetime of the session;
* per-form tokens, issued on demand under a form name, valid for
  ``CSRF_FORM_TOKEN_TTL`` seconds and consumed by a successful
  validation.  Login and registration use these since they run before a
  session exists.
"""
from __future__ import annotations

import hmac
import time
from typing import Optional

from django.conf import settings

from clinic.exceptions import TokenExpired, TokenMismatch, TokenNotFound
from clinic.services.session import SessionContext, new_token


class CsrfTokenStore:

    def __init__(self, ctx: SessionContext, ttl: Optional[int] = None):
        self.ctx = ctx
        self.ttl = ttl if ttl is not None else settings.CSRF_FORM_TOKEN_TTL

    # -- session token -------------------------------------------------------

    def session_token(self) -> str:
        if not self.ctx.csrf_token:
            self.ctx.csrf_token = new_token()
            self.ctx.commit()
        return self.ctx.csrf_token

    def check_session_token(self, submitted: Optional[str]) -> None:
        expected = self.ctx.csrf_token
        if not expected:
            raise TokenNotFound()
        if not submitted or not hmac.compare_digest(str(expected), str(submitted)):
            raise TokenMismatch()

    # -- per-form tokens -----------------------------------------------------

    def issue(self, form_name: str = 'default', now: Optional[float] = None) -> str:
        now = time.time() if now is None else now
        self.purge_expired(now)
        token = new_token()
        self.ctx.csrf_tokens[form_name] = {
            'token': token,
            'issued_at': now,
            'expires_at': now + self.ttl,
        }
        self.ctx.commit()
        return token

    def validate(self, submitted: Optional[str], form_name: str = 'default',
                 now: Optional[float] = None) -> None:
        now = time.time() if now is None else now
        entry = self.ctx.csrf_tokens.get(form_name)
        if entry is None:
            raise TokenNotFound()
        if now > entry['expires_at']:
            raise TokenExpired('Token CSRF expirado')
        if not submitted or not hmac.compare_digest(entry['token'], str(submitted)):
            raise TokenMismatch()
        del self.ctx.csrf_tokens[form_name]
        self.ctx.commit()

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        stale = [name for name, entry in self.ctx.csrf_tokens.items() if entry['expires_at'] <= now]
        for name in stale:
            del self.ctx.csrf_tokens[name]
        if stale:
            self.ctx.commit()
        return len(stale)
