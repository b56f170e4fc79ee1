from .security import get_current_user, create_access_token, require_admin_key
from .telegram import validate_init_data, InitDataError
from .router import router

__all__ = [
    "get_current_user",
    "create_access_token",
    "require_admin_key",
    "validate_init_data",
    "InitDataError",
    "router"
]
