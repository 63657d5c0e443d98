"""Routes package initialization."""

from mahallu_api.routes.families.routes import router as families_router
from mahallu_api.routes.health import router as health_router
from mahallu_api.routes.member_user.routes import router as member_user_router
from mahallu_api.routes.members.routes import router as members_router
from mahallu_api.routes.tenants.routes import router as tenants_router
from mahallu_api.routes.users.routes import router as users_router

__all__ = ["families_router", "health_router", "member_user_router", "members_router", "tenants_router", "users_router"]
