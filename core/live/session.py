from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.roles import Role, parse_role


@dataclass(frozen=True)
class Session:
    """The signed-in user, passed explicitly to every screen and backend."""
    user_id: str
    role: Role
    email: str = ''
    full_name: str = ''
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @classmethod
    def from_auth_payload(cls, payload: dict) -> 'Session':
        """Build a session from a ``/auth/signin`` or ``/auth/signup`` response."""
        user = payload['user']
        return cls(
            user_id=str(user['id']),
            role=parse_role(user['role']),
            email=user.get('email', ''),
            full_name=user.get('full_name', ''),
            access_token=payload.get('access'),
            refresh_token=payload.get('refresh'),
        )

    @classmethod
    def for_user(cls, user) -> 'Session':
        """Session for an in-process caller that already holds a ``User``."""
        return cls(user_id=str(user.id), role=parse_role(user.role), email=user.email,
                   full_name=user.full_name)

    @property
    def auth_header(self) -> dict:
        return {'Authorization': f'Bearer {self.access_token}'} if self.access_token else {}
