"""Session lifecycle: one shared token refresh for every expired request.

Requests that fail with 401 call :meth:`SessionManager.recover`. The first
caller starts the refresh as a task owned by the manager; every caller,
the first included, is parked on a FIFO queue of futures and released when
that task settles, either with the new access token or with the refresh
error. A caller that goes away only drops its own place in the queue.

When the session cannot be salvaged the tokens are cleared and the
``on_terminated`` listeners are notified so the host can send the user back
to the login screen.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable

from auth.models import RefreshResult
from auth.token_store import TokenStore

log = logging.getLogger(__name__)

Refresher = Callable[[str], Awaitable[RefreshResult]]
TerminatedListener = Callable[[str], None]


class SessionChangedError(Exception):
    """Logout or a new login happened while the refresh was in flight."""


class SessionManager:
    def __init__(self, token_store: TokenStore, refresher: Refresher | None = None):
        self._tokens = token_store
        self._refresher = refresher
        self._refresh_task: asyncio.Task | None = None
        self._pending: deque[asyncio.Future] = deque()
        self._listeners: list[TerminatedListener] = []

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def has_refresher(self) -> bool:
        return self._refresher is not None

    def set_refresher(self, refresher: Refresher):
        self._refresher = refresher

    def on_terminated(self, listener: TerminatedListener):
        """Subscribe to forced logouts. Listener gets a short reason string."""
        self._listeners.append(listener)

    def terminate(self, reason: str):
        """Clear credentials and tell the host the session is gone."""
        self._tokens.clear()
        self._notify_terminated(reason)

    def _notify_terminated(self, reason: str):
        log.warning("Session terminated: %s", reason)
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception:
                log.exception("Session terminated listener failed")

    async def recover(self, error: BaseException) -> str:
        """Return a fresh access token after a 401, or raise.

        ``error`` is the failure that triggered recovery; it is re-raised
        when there is no refresh token to try.
        """
        if self._refresher is None:
            raise RuntimeError("SessionManager has no refresher configured")

        # Gate is checked and set before the first await
        if self._refresh_task is None:
            refresh_token = self._tokens.refresh_token
            if not refresh_token:
                self.terminate("no refresh token")
                raise error
            self._refresh_task = asyncio.create_task(self._run_refresh(refresh_token))
        else:
            log.debug("Refresh in flight, queued (%d waiting)", len(self._pending))

        fut = asyncio.get_running_loop().create_future()
        self._pending.append(fut)
        return await fut

    async def _run_refresh(self, refresh_token: str):
        try:
            log.info("Refreshing access token...")
            result = await self._refresher(refresh_token)
        except asyncio.CancelledError:
            self._refresh_task = None
            self._release(cancel=True)
            raise
        except Exception as e:
            log.error("Token refresh failed: %s", e)
            self._refresh_task = None
            if self._tokens.refresh_token != refresh_token:
                # A newer session owns the store now; leave it alone
                self._release(error=e)
                return
            self._tokens.clear()
            self._release(error=e)
            self._notify_terminated("refresh failed")
            return

        self._refresh_task = None
        if self._tokens.refresh_token != refresh_token:
            log.info("Session changed during refresh, discarding new token")
            self._release(error=SessionChangedError("session changed during token refresh"))
            return

        if result.refresh_token:
            # Backend rotated the refresh token as well
            self._tokens.save(result.access_token, result.refresh_token)
        else:
            self._tokens.set_access_token(result.access_token)
        log.info("Token refresh succeeded")
        self._release(token=result.access_token)

    def _release(self, token: str | None = None, error: BaseException | None = None, cancel: bool = False):
        """Settle every queued caller in arrival order."""
        pending, self._pending = self._pending, deque()
        for fut in pending:
            if fut.done():
                continue
            if cancel:
                fut.cancel()
            elif error is not None:
                fut.set_exception(error)
            else:
                fut.set_result(token)
