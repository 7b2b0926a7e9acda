"""Access/refresh token storage in a local JSON file."""

import json
import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)

_ACCESS_KEY = "accessToken"
_REFRESH_KEY = "refreshToken"
_USER_KEY = "user"


class TokenStore:
    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._user: dict | None = None
        self._load()

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token and self._refresh_token)

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    @property
    def user(self) -> dict | None:
        return self._user

    def save(self, access_token: str, refresh_token: str, user: dict | None = None):
        self._access_token = access_token
        self._refresh_token = refresh_token
        if user is not None:
            self._user = user
        self._persist()
        log.info("Tokens saved")

    def set_access_token(self, access_token: str):
        """Replace the access token after a refresh; refresh token is kept."""
        self._access_token = access_token
        self._persist()
        log.info("Access token updated")

    def set_user(self, user: dict | None):
        self._user = user
        self._persist()

    def clear(self):
        self._access_token = None
        self._refresh_token = None
        self._user = None
        self._persist()
        log.info("Tokens cleared")

    def _read_file(self) -> dict:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    def _load(self):
        data = self._read_file()
        self._access_token = data.get(_ACCESS_KEY) or None
        self._refresh_token = data.get(_REFRESH_KEY) or None
        self._user = data.get(_USER_KEY)
        # A half-present pair counts as logged out
        if not (self._access_token and self._refresh_token):
            self._access_token = None
            self._refresh_token = None
            self._user = None

    def _persist(self):
        # Read existing file, merge our keys
        data = self._read_file()

        for key, value in (
            (_ACCESS_KEY, self._access_token),
            (_REFRESH_KEY, self._refresh_token),
            (_USER_KEY, self._user),
        ):
            if value:
                data[key] = value
            else:
                data.pop(key, None)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, self._path)
