"""
Identity provider interface.

Authentication lives outside this package; the pipeline only needs the
current user's opaque id and a bearer token for the receipt service.
"""

from typing import Protocol


class IdentityProvider(Protocol):
    def current_user_id(self) -> str | None: ...

    def access_token(self) -> str | None: ...


class StaticIdentityProvider:
    """Identity fixed at construction, e.g. from an already-restored session."""

    def __init__(self, user_id: str | None, token: str | None = None):
        self._user_id = user_id
        self._token = token

    def current_user_id(self) -> str | None:
        return self._user_id

    def access_token(self) -> str | None:
        return self._token
