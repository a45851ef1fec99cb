"""Device code login flow."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger

from o365mail.auth.constants import (
    DEFAULT_VERIFICATION_URL,
    DENIED_ERRORS,
    EXPIRED_ERRORS,
    GRAPH_SCOPES,
    PENDING_GRACE_SEC,
    USERNAME_CLAIMS,
)
from o365mail.auth.errors import (
    AuthError,
    PendingExpiredOrDeniedError,
    StartAuthError,
)
from o365mail.auth.models import AuthResult, DeviceCodeInfo
from o365mail.auth.storage import SerializableCache, TokenStore


def _describe_error(payload: dict[str, Any]) -> str:
    error = payload.get("error") or "unknown_error"
    description = payload.get("error_description")
    return f"{error}: {description}" if description else str(error)


def _username_from_result(result: dict[str, Any]) -> str | None:
    claims = result.get("id_token_claims") or {}
    for key in USERNAME_CLAIMS:
        value = claims.get(key)
        if value:
            return str(value)
    return None


def _expires_at(result: dict[str, Any]) -> datetime:
    now = datetime.now(timezone.utc)
    expires_on = result.get("expires_on")
    if expires_on:
        return datetime.fromtimestamp(int(expires_on), tz=timezone.utc)
    return now + timedelta(seconds=int(result.get("expires_in") or 0))


class PendingAuthentication:
    """A device code handshake waiting for the user.

    The outcome is delivered once through :meth:`wait`; afterwards the handle
    is closed.
    """

    def __init__(self, info: DeviceCodeInfo):
        self.info = info
        self._future: Future[AuthResult] = Future()
        self._abandoned = threading.Event()
        self._consumed = False
        self._lock = threading.Lock()

    def should_stop(self, flow: dict[str, Any]) -> bool:
        """Exit condition handed to the polling loop."""
        if self._abandoned.is_set():
            return True
        return flow.get("expires_at", self.info.expires_at) < time.time()

    def abandon(self) -> None:
        """Stop polling. The identity provider is not notified."""
        self._abandoned.set()

    @property
    def abandoned(self) -> bool:
        return self._abandoned.is_set()

    def done(self) -> bool:
        return self._future.done()

    def remaining(self) -> float:
        return max(self.info.expires_at - time.time(), 0.0)

    def wait(self, timeout: float | None = None) -> AuthResult:
        """Block until the flow completes and return its result.

        Without a timeout the wait is bounded by the code's expiry plus a
        short grace period. A timeout abandons the flow.
        """
        with self._lock:
            if self._consumed:
                raise RuntimeError("Pending authentication was already resolved")
            self._consumed = True

        if timeout is None:
            timeout = self.remaining() + PENDING_GRACE_SEC
        try:
            return self._future.result(timeout=timeout)
        except FutureTimeoutError:
            self.abandon()
            raise PendingExpiredOrDeniedError(
                f"Timed out after {int(timeout)}s waiting for the browser login"
            ) from None

    def _resolve(self, result: AuthResult) -> None:
        self._future.set_result(result)

    def _fail(self, error: BaseException) -> None:
        self._future.set_exception(error)


class DeviceCodeAuthenticator:
    """Runs the OAuth2 device authorization grant through MSAL."""

    def __init__(
        self,
        app: Any,
        cache: SerializableCache,
        store: TokenStore,
        scopes: list[str] | None = None,
    ):
        self._app = app
        self._cache = cache
        self._store = store
        self._scopes = list(scopes or GRAPH_SCOPES)

    def start_device_code_flow(
        self, scopes: list[str] | None = None
    ) -> tuple[DeviceCodeInfo, PendingAuthentication]:
        """Request a device code and start waiting for the user in the background."""
        requested = list(scopes or self._scopes)
        try:
            flow = self._app.initiate_device_flow(scopes=requested)
        except Exception as exc:
            raise StartAuthError("Failed to start device code flow", cause=exc) from exc

        if "user_code" not in flow:
            raise StartAuthError("Failed to start device code flow", cause=_describe_error(flow))

        expires_in = int(flow.get("expires_in") or 0)
        info = DeviceCodeInfo(
            user_code=flow["user_code"],
            verification_url=flow.get("verification_uri") or DEFAULT_VERIFICATION_URL,
            expires_in=expires_in,
            expires_at=float(flow.get("expires_at") or time.time() + expires_in),
            message=flow.get("message", ""),
        )
        pending = PendingAuthentication(info)
        logger.debug(f"Device code issued, expires in {expires_in}s")

        thread = threading.Thread(
            target=self._complete,
            args=(flow, pending),
            name="device-code-wait",
            daemon=True,
        )
        thread.start()
        return info, pending

    def _complete(self, flow: dict[str, Any], pending: PendingAuthentication) -> None:
        try:
            pending._resolve(self._acquire(flow, pending))
        except AuthError as exc:
            logger.debug(f"Device code flow failed: {exc.message}")
            pending._fail(exc)
        except Exception as exc:
            logger.debug(f"Device code polling raised: {exc}")
            pending._fail(AuthError("Device code polling failed", cause=exc))

    def _acquire(self, flow: dict[str, Any], pending: PendingAuthentication) -> AuthResult:
        result = self._app.acquire_token_by_device_flow(flow, exit_condition=pending.should_stop)

        if "access_token" not in result:
            error = result.get("error")
            if error in DENIED_ERRORS:
                raise PendingExpiredOrDeniedError("Sign-in was denied", cause=_describe_error(result))
            if error in EXPIRED_ERRORS:
                reason = "abandoned" if pending.abandoned else "expired"
                raise PendingExpiredOrDeniedError(
                    f"Device code {reason} before sign-in completed", cause=_describe_error(result)
                )
            raise AuthError("Identity provider rejected the sign-in", cause=_describe_error(result))

        account = _username_from_result(result)
        if not account:
            raise AuthError("Identity provider did not return an account name")

        # The token must be on disk before anyone sees it.
        self._store.export(self._cache)
        logger.debug(f"Signed in as {account}")
        return AuthResult(
            access_token=result["access_token"],
            account=account,
            expires_at=_expires_at(result),
        )
