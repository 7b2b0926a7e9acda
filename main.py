import asyncio
import logging

import aiohttp

from api_client import ApiClient, ApiError
from auth.session import SessionChangedError, SessionManager
from auth.token_store import TokenStore
from config import Settings, get_settings
from core import AppState

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
log = logging.getLogger(__name__)

_ME_MAX_RETRIES = 2
_ME_MAX_DELAY = 30.0


def create_app(settings: Settings | None = None) -> AppState:
    """Build the one token store / session manager / client for this process."""
    settings = settings or get_settings()
    state = AppState()

    token_store = TokenStore(settings.token_file)
    session_manager = SessionManager(token_store)
    api_client = ApiClient(
        settings.api_url,
        token_store,
        session_manager,
        timeout=settings.request_timeout,
        refresh_timeout=settings.refresh_timeout,
    )
    session_manager.on_terminated(state.handle_session_terminated)

    state.token_store = token_store
    state.session_manager = session_manager
    state.api_client = api_client
    if token_store.is_authenticated:
        state.enter(token_store.user)
    return state


async def sign_in(state: AppState, email: str, password: str, company_code: str) -> dict:
    result = await state.api_client.login(email, password, company_code)
    user_info = result.user.model_dump(by_alias=True)
    state.enter(user_info)
    return user_info


def sign_out(state: AppState, reason: str | None = None):
    state.api_client.logout()
    state.leave(reason)


async def refresh_user(state: AppState, sleep=asyncio.sleep) -> bool:
    """GET /auth/me and update the cached user.

    401 (after the client's own refresh attempt) logs out. Network and
    server errors are retried with exponential backoff and never log out.
    """
    attempt = 0
    while True:
        try:
            user = await state.api_client.get_me()
        except ApiError as e:
            if e.status == 401:
                log.info("User not authenticated, logging out")
                sign_out(state, "unauthorized")
                return False
            error = e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = e
        except SessionChangedError:
            log.info("Session changed while checking user")
            return False
        else:
            user_info = user.model_dump(by_alias=True)
            state.token_store.set_user(user_info)
            state.user_info = user_info
            state.is_authenticated = True
            return True

        if attempt >= _ME_MAX_RETRIES:
            log.warning("Could not validate user: %s", error)
            return False
        delay = min(1.0 * 2 ** attempt, _ME_MAX_DELAY)
        attempt += 1
        await sleep(delay)


async def auth_check_loop(state: AppState, interval: float = 30.0):
    """Periodically re-validate the signed-in user."""
    while True:
        await asyncio.sleep(interval)
        if state.token_store and state.token_store.is_authenticated:
            try:
                await refresh_user(state)
            except Exception:
                log.exception("Auth check failed")
        elif state.is_authenticated:
            state.leave("logged out")


async def run(state: AppState, interval: float):
    try:
        if state.is_authenticated:
            await refresh_user(state)
        await auth_check_loop(state, interval)
    finally:
        await state.api_client.close()


if __name__ == "__main__":
    settings = get_settings()
    state = create_app(settings)
    log.info("Console session at %s (route %s)", settings.api_url, state.route)
    try:
        asyncio.run(run(state, settings.auth_check_interval))
    except KeyboardInterrupt:
        pass
