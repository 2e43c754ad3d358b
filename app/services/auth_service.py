from __future__ import annotations
from typing import Optional

from fastapi import Header, HTTPException, status

from app.schemas.context import UserContext


class AuthService:
    """
    L'autenticazione e' fatta dal gateway: qui si legge solo l'identita'
    gia' verificata che il gateway inoltra negli header.
    """

    @staticmethod
    async def get_current_user(
        x_user_id: Optional[str] = Header(None),
        x_user_role: Optional[str] = Header(None),
    ) -> UserContext:
        if not x_user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Identita' utente mancante")
        role = (x_user_role or "member").lower()
        if role not in ("admin", "member"):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Ruolo non riconosciuto: {role}")
        return UserContext(user_id=x_user_id, role=role)
