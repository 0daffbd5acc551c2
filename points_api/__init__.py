"""
Points API Package.

FastAPI routers for the user points surface (/points) and the
settlement admin surface (/admin).
"""

from points_api.router import (
    admin_router,
    points_router,
    create_app,
    get_current_user_id,
    require_admin,
    get_db_factory,
)

__all__ = [
    "admin_router",
    "points_router",
    "create_app",
    "get_current_user_id",
    "require_admin",
    "get_db_factory",
]
