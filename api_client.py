"""Central HTTP client for the rental backend. Bearer auth with shared refresh."""

import json as _json
import logging

import aiohttp

from auth.models import AuthResult, RefreshResult, User
from auth.session import SessionManager
from auth.token_store import TokenStore

log = logging.getLogger(__name__)


class ApiError(Exception):
    """Backend answered with status >= 400."""

    def __init__(self, status: int, message: str, *, method: str = "", path: str = "", body: str = ""):
        super().__init__(f"{method} {path} → {status}: {message}".strip())
        self.status = status
        self.message = message
        self.method = method
        self.path = path
        self.body = body

    @classmethod
    def from_body(cls, status: int, body: str, method: str, path: str) -> "ApiError":
        message = body[:200]
        try:
            data = _json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error") or message
        return cls(status, str(message), method=method, path=path, body=body)


class ApiRequest:
    """One logical call. ``retried`` is set once it has gone through a refresh."""

    def __init__(self, method: str, path: str, *, json=None, params=None, auth: bool = True):
        self.method = method
        self.path = path
        self.json = json
        self.params = params
        self.auth = auth
        self.retried = False
        self.token: str | None = None

    def headers(self, stored_token: str | None) -> dict:
        if not self.auth:
            return {}
        token = self.token or stored_token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}


def _unwrap(payload):
    """Strip the backend's ``{success, message, data}`` envelope."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class ApiClient:
    def __init__(
        self,
        server_url: str,
        token_store: TokenStore,
        session_manager: SessionManager | None = None,
        *,
        timeout: float = 30.0,
        refresh_timeout: float | None = 30.0,
    ):
        self._base = server_url.rstrip("/")
        self._tokens = token_store
        self._manager = session_manager or SessionManager(token_store)
        if not self._manager.has_refresher:
            self._manager.set_refresher(self.refresh_access_token)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._refresh_timeout = refresh_timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def session_manager(self) -> SessionManager:
        return self._manager

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def request(self, method: str, path: str, *, json=None, params=None, auth=True):
        req = ApiRequest(method, path, json=json, params=params, auth=auth)
        try:
            return await self._send(req)
        except ApiError as e:
            if e.status != 401 or not req.auth or req.retried:
                raise
            expired = e

        req.retried = True
        req.token = await self._manager.recover(expired)
        log.debug("Replaying %s %s with refreshed token", method, path)
        return await self._send(req)

    async def _send(self, req: ApiRequest):
        await self._ensure_session()
        url = f"{self._base}{req.path}"
        headers = req.headers(self._tokens.access_token)

        async with self._session.request(
            req.method, url, json=req.json, params=req.params, headers=headers,
        ) as resp:
            if resp.status >= 400:
                body = await resp.text()
                if resp.status == 401:
                    log.info("API %s %s → 401 (retried=%s)", req.method, req.path, req.retried)
                else:
                    log.error("API %s %s → %d: %s", req.method, req.path, resp.status, body[:200])
                raise ApiError.from_body(resp.status, body, req.method, req.path)
            return await resp.json(content_type=None)

    async def get(self, path: str, *, params=None):
        return await self.request("GET", path, params=params)

    async def post(self, path: str, *, json=None, params=None):
        return await self.request("POST", path, json=json, params=params)

    async def put(self, path: str, *, json=None, params=None):
        return await self.request("PUT", path, json=json, params=params)

    async def patch(self, path: str, *, json=None, params=None):
        return await self.request("PATCH", path, json=json, params=params)

    async def delete(self, path: str, *, params=None):
        return await self.request("DELETE", path, params=params)

    # ── Auth ───────────────────────────────────────────────

    async def refresh_access_token(self, refresh_token: str) -> RefreshResult:
        """POST /auth/refresh straight on the HTTP session, never intercepted.

        Nothing is stored here; SessionManager decides whether the result
        still belongs to the current session.
        """
        await self._ensure_session()
        kwargs = {}
        if self._refresh_timeout:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self._refresh_timeout)

        async with self._session.post(
            f"{self._base}/auth/refresh", json={"refreshToken": refresh_token}, **kwargs,
        ) as resp:
            if resp.status >= 400:
                body = await resp.text()
                log.error("Refresh failed: %d", resp.status)
                raise ApiError.from_body(resp.status, body, "POST", "/auth/refresh")
            data = await resp.json(content_type=None)

        return RefreshResult.model_validate(_unwrap(data))

    async def _authenticate(self, path: str, payload: dict) -> AuthResult:
        data = await self.request("POST", path, json=payload, auth=False)
        result = AuthResult.model_validate(_unwrap(data))
        self._tokens.save(
            result.tokens.access_token,
            result.tokens.refresh_token,
            result.user.model_dump(by_alias=True),
        )
        log.info("Authenticated as %s (%s)", result.user.email, result.user.role)
        return result

    async def login(self, email: str, password: str, company_code: str) -> AuthResult:
        return await self._authenticate("/auth/login", {
            "email": email,
            "password": password,
            "companyCode": company_code,
        })

    async def register_company(self, data: dict) -> AuthResult:
        """Create a company together with its first superadmin."""
        return await self._authenticate("/auth/register", data)

    async def register_user(self, data: dict) -> dict:
        return _unwrap(await self.request("POST", "/auth/register/user", json=data))

    async def get_me(self) -> User:
        return User.model_validate(_unwrap(await self.request("GET", "/auth/me")))

    def logout(self):
        self._tokens.clear()

    # ── Notifications ──────────────────────────────────────

    async def list_notifications(self) -> list[dict]:
        return await self.request("GET", "/notifications")

    async def unread_notification_count(self) -> int:
        data = await self.request("GET", "/notifications/unread-count")
        return int(data.get("count", 0)) if data else 0

    async def mark_notification_read(self, notification_id: str):
        return await self.request("PATCH", f"/notifications/{notification_id}/read")

    async def approve_notification(self, notification_id: str) -> dict:
        return await self.request("POST", f"/notifications/{notification_id}/approve")

    async def reject_notification(self, notification_id: str) -> dict:
        return await self.request("POST", f"/notifications/{notification_id}/reject")
