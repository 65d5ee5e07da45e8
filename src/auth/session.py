"""
Authenticated Identity

Sign-in itself happens elsewhere; the offline queue only needs to know who
is signed in right now and which token to send to the server.
"""

from typing import Optional


class AuthRequiredError(Exception):
    """An operation needs a signed-in user and there is none."""
    pass


class AuthSession:
    """
    Holds the current identity.

    One instance is shared by the gateway, the dispatcher and the replay
    processor, so signing out is seen by all of them at once.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ):
        self._user_id = user_id
        self._access_token = access_token

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def is_authenticated(self) -> bool:
        return bool(self._user_id)

    def sign_in(self, user_id: str, access_token: Optional[str] = None) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        self._user_id = user_id
        self._access_token = access_token

    def sign_out(self) -> None:
        self._user_id = None
        self._access_token = None

    def require_user_id(self) -> str:
        """
        Current user id.

        Raises:
            AuthRequiredError: If nobody is signed in
        """
        if not self._user_id:
            raise AuthRequiredError("User not authenticated")
        return self._user_id
