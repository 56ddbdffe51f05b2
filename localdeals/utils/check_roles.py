# localdeals/utils/check_roles.py
from fastapi import HTTPException
from typing import Callable
from functools import wraps

from localdeals.models.user_models import UserRole


def require_role(roles: list[UserRole | str]):
    """Decorator to validate user role; expects the route to take `_user`."""
    allowed = {r.value if isinstance(r, UserRole) else r.lower() for r in roles}

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise HTTPException(status_code=401, detail="User not authenticated")
            if _user.role.lower() not in allowed:
                raise HTTPException(status_code=403, detail="Permission denied")
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
