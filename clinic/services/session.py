"""
Session lifecycle for authenticated doctors.

A browser session moves between three states:

* anonymous: no ``user_id`` bound;
* authenticated: ``user_id`` bound and the last activity is younger than
  ``SESSION_IDLE_TIMEOUT`` seconds.  Every authenticated request slides
  ``last_activity`` forward;
* expired: ``user_id`` bound but idle for too long.  The first request
  that notices it clears the session, after which it is anonymous again.

``SessionContext`` is the explicit, per-request view over the Django
session store.  It is loaded from ``request.session``, changed through
its methods and written back with :meth:`SessionContext.commit`.
``Authenticator`` holds the process-wide policy (timeouts, throttle,
monitor) and performs login, resume and logout against a context.
"""
from __future__ import annotations

import secrets
import time
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.utils import timezone

from clinic.exceptions import InvalidCredentials, RateLimitError
from clinic.models import Doctor, LoginAttempt
from clinic.services.monitoring import Monitor, client_ip


def new_token() -> str:
    """256 random bits, hex encoded."""
    return secrets.token_hex(32)


class SessionContext:
    FIELDS = (
        'user_id', 'username', 'role', 'login_time', 'last_activity',
        'last_renewal', 'user_agent', 'csrf_token', 'csrf_tokens',
    )

    def __init__(self, session, idle_timeout: int):
        self.session = session
        self.idle_timeout = idle_timeout
        self.user_id: Optional[int] = None
        self.username: Optional[str] = None
        self.role: Optional[str] = None
        self.login_time: Optional[float] = None
        self.last_activity: Optional[float] = None
        self.last_renewal: Optional[float] = None
        self.user_agent: Optional[str] = None
        self.csrf_token: Optional[str] = None
        self.csrf_tokens: dict[str, dict] = {}
        self._doctor: Optional[Doctor] = None
        self._doctor_loaded = False

    @classmethod
    def load(cls, session, idle_timeout: Optional[int] = None) -> 'SessionContext':
        ctx = cls(session, idle_timeout if idle_timeout is not None else settings.SESSION_IDLE_TIMEOUT)
        for name in cls.FIELDS:
            if name in session:
                setattr(ctx, name, session[name])
        ctx.csrf_tokens = dict(ctx.csrf_tokens or {})
        return ctx

    def commit(self) -> None:
        for name in self.FIELDS:
            value = getattr(self, name)
            if value is None or value == {}:
                self.session.pop(name, None)
            else:
                self.session[name] = value
        self.session.modified = True

    # -- state ---------------------------------------------------------------

    def is_authenticated(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return (
            self.user_id is not None
            and self.last_activity is not None
            and now - self.last_activity < self.idle_timeout
        )

    def time_remaining(self, now: Optional[float] = None) -> Optional[int]:
        if self.user_id is None or self.last_activity is None:
            return None
        now = time.time() if now is None else now
        return int(self.idle_timeout - (now - self.last_activity))

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.time() if now is None else now

    def bind(self, doctor: Doctor, *, now: float, user_agent: Optional[str]) -> None:
        self.user_id = doctor.id
        self.username = doctor.username
        self.role = Doctor.ROLE
        self.login_time = now
        self.last_activity = now
        self.last_renewal = now
        self.user_agent = user_agent
        self.csrf_token = new_token()
        self._doctor = doctor
        self._doctor_loaded = True

    def clear(self) -> None:
        for name in self.FIELDS:
            setattr(self, name, None)
        self.csrf_tokens = {}
        self._doctor = None
        self._doctor_loaded = False

    def current_user(self) -> Optional[Doctor]:
        """Doctor bound to this session, looked up at most once per request."""
        if not self.is_authenticated():
            return None
        if not self._doctor_loaded:
            self._doctor = Doctor.objects.filter(id=self.user_id).first()
            self._doctor_loaded = True
        return self._doctor


class LoginThrottle:
    """Sliding-window limit over the append-only ``LoginAttempt`` log.

    Every evaluated attempt for a username counts, successful or not.
    """

    def __init__(self, max_attempts: Optional[int] = None, window_seconds: Optional[int] = None):
        self.max_attempts = max_attempts if max_attempts is not None else settings.LOGIN_MAX_ATTEMPTS
        self.window_seconds = window_seconds if window_seconds is not None else settings.LOGIN_ATTEMPT_WINDOW

    def recent_attempts(self, username: str, now=None) -> int:
        now = now or timezone.now()
        since = now - timedelta(seconds=self.window_seconds)
        return LoginAttempt.objects.filter(username=username, created_at__gt=since).count()

    def is_limited(self, username: str, now=None) -> bool:
        return self.recent_attempts(username, now) >= self.max_attempts

    def record(self, username: str, *, ip: Optional[str], success: bool, now=None) -> LoginAttempt:
        return LoginAttempt.objects.create(
            username=username,
            ip_address=ip or '',
            success=success,
            created_at=now or timezone.now(),
        )


class Authenticator:

    def __init__(self, monitor: Monitor, throttle: LoginThrottle, *,
                 idle_timeout: Optional[int] = None,
                 renew_interval: Optional[int] = None,
                 bind_user_agent: Optional[bool] = None):
        self.monitor = monitor
        self.throttle = throttle
        self.idle_timeout = idle_timeout if idle_timeout is not None else settings.SESSION_IDLE_TIMEOUT
        self.renew_interval = renew_interval if renew_interval is not None else settings.SESSION_RENEW_INTERVAL
        self.bind_user_agent = bind_user_agent if bind_user_agent is not None else settings.SESSION_BIND_USER_AGENT

    def load(self, request) -> SessionContext:
        ctx = getattr(request, '_session_context', None)
        if ctx is None:
            ctx = SessionContext.load(request.session, self.idle_timeout)
            request._session_context = ctx
        return ctx

    def resume(self, request) -> Optional[SessionContext]:
        """Validate the session for this request and slide its expiry.

        Returns the authenticated context, or ``None`` when the session is
        anonymous, expired or failed its user-agent check.
        """
        ctx = self.load(request)
        if ctx.user_id is None:
            return None
        now = time.time()
        if not ctx.is_authenticated(now):
            self.monitor.security('session expired', severity='low', request=request,
                                  user_id=ctx.user_id, idle=int(now - (ctx.last_activity or 0)))
            self._reset(request, ctx)
            return None
        agent = request.META.get('HTTP_USER_AGENT', '')
        if self.bind_user_agent and ctx.user_agent is not None and ctx.user_agent != agent:
            self.monitor.security('session user agent mismatch', severity='high', request=request,
                                  session_user=ctx.user_id)
            self._reset(request, ctx)
            return None

        ctx.touch(now)
        if ctx.last_renewal is None or now - ctx.last_renewal > self.renew_interval:
            request.session.cycle_key()
            ctx.last_renewal = now
        ctx.commit()
        return ctx

    def login(self, request, username: str, password: str) -> Doctor:
        ip = client_ip(request)
        if self.throttle.is_limited(username):
            self.monitor.security('login rate limit exceeded', severity='medium', request=request,
                                  username=username, window=self.throttle.window_seconds)
            raise RateLimitError()

        doctor = Doctor.objects.filter(username=username).first()
        if doctor is None:
            # Hash anyway so unknown usernames take as long as wrong passwords.
            make_password(password)
            valid = False
        else:
            valid = doctor.check_password(password)

        self.throttle.record(username, ip=ip, success=valid)
        if not valid:
            self.monitor.security('login failed', severity='medium', request=request,
                                  username=username, known_user=doctor is not None)
            raise InvalidCredentials()

        ctx = self.load(request)
        # New identifier on privilege change.
        request.session.cycle_key()
        ctx.bind(doctor, now=time.time(), user_agent=request.META.get('HTTP_USER_AGENT', ''))
        ctx.commit()
        self.monitor.security('login succeeded', severity='low', request=request,
                              username=username, doctor_id=doctor.id)
        return doctor

    def logout(self, request) -> None:
        ctx = self.load(request)
        if ctx.user_id is not None:
            self.monitor.security('logout', severity='low', request=request, doctor_id=ctx.user_id)
        self._reset(request, ctx)

    def _reset(self, request, ctx: SessionContext) -> None:
        ctx.clear()
        request.session.flush()
