from __future__ import annotations
from typing import Literal

from pydantic import BaseModel

Role = Literal["admin", "member", "system"]


class UserContext(BaseModel):
    user_id: str
    role: Role = "member"


# Identita' usata dai job differiti (consumer delle scadenze)
SYSTEM_CONTEXT = UserContext(user_id="system", role="system")


def is_admin(user: UserContext) -> bool:
    return user.role in ("admin", "system")
