"""Console-wide state shared between the session layer and the screens."""

import logging

log = logging.getLogger(__name__)

LOGIN_ROUTE = "/login"
DASHBOARD_ROUTE = "/dashboard"


class AppState:
    def __init__(self):
        # Auth / Server
        self.api_client = None       # ApiClient, set from main.py
        self.token_store = None      # TokenStore, set from main.py
        self.session_manager = None  # SessionManager, set from main.py
        self.user_info: dict | None = None
        self.is_authenticated: bool = False
        # Navigation
        self.route: str = LOGIN_ROUTE
        self.logout_reason: str | None = None

    def has_role(self, *roles: str) -> bool:
        """Gate for role-restricted screens. No roles means any signed-in user."""
        if not self.is_authenticated:
            return False
        if not roles:
            return True
        return bool(self.user_info) and self.user_info.get("role") in roles

    def enter(self, user_info: dict | None):
        self.user_info = user_info
        self.is_authenticated = True
        self.logout_reason = None
        self.route = DASHBOARD_ROUTE

    def leave(self, reason: str | None = None):
        self.user_info = None
        self.is_authenticated = False
        self.logout_reason = reason
        self.route = LOGIN_ROUTE

    def handle_session_terminated(self, reason: str):
        """SessionManager listener: the session is gone, back to login."""
        log.info("Redirecting to %s (%s)", LOGIN_ROUTE, reason)
        self.leave(reason)
