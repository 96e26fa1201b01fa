"""
Caller identity from the headers set by the fronting session layer.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

ADMIN_ROLES = ('admin', 'super_admin')


@dataclass
class CurrentUser:
    id: int
    role: str
    merchant_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_merchant_id: Optional[str] = Header(None),
) -> CurrentUser:
    """Authenticated caller; 401 when the identity headers are missing or malformed."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        user_id = int(x_user_id)
        merchant_id = int(x_merchant_id) if x_merchant_id else None
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid identity headers")
    return CurrentUser(id=user_id, role=(x_user_role or 'user').strip().lower(), merchant_id=merchant_id)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def check_merchant_access(user: CurrentUser, merchant_id: int):
    """Callers may only act on their own merchant unless they are admins."""
    if user.is_admin:
        return
    if user.merchant_id != merchant_id:
        raise HTTPException(status_code=403, detail="Not authorized for this merchant")
