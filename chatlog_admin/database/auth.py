"""
Bearer credential collaborator.
The console never decides authentication policy; it only asks for a token.
"""

from typing import Protocol


class CredentialProvider(Protocol):
    """Supplies the signed-in operator's bearer token, or None if signed out."""

    def get_token(self) -> str | None: ...


class StaticCredentialProvider:
    """Serves a fixed token (from settings); blank tokens count as signed out."""

    def __init__(self, token: str | None):
        self._token = token.strip() if token else None

    def get_token(self) -> str | None:
        return self._token or None

    def clear(self) -> None:
        """Forget the token, e.g. after the auth collaborator reports a timeout."""
        self._token = None
