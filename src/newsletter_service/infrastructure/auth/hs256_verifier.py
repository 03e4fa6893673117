from __future__ import annotations

import jwt

from newsletter_service.application.dto.principal import Principal


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        subject = payload.get("sub")
        if not subject:
            raise jwt.InvalidTokenError("Token has no subject")
        roles = payload.get("roles", [])
        if isinstance(roles, str):
            roles = [roles]
        return Principal(
            subject_id=str(subject),
            roles=[str(r) for r in roles],
        )
