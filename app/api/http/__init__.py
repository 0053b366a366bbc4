from app.api.http.health import router as health_router
from app.api.http.auth import router as auth_router
from app.api.http.users import router as users_router
from app.api.http.pastes import router as pastes_router, me_router
from app.api.http.admin import router as admin_router

__all__ = [
    "health_router",
    "auth_router",
    "users_router",
    "pastes_router",
    "me_router",
    "admin_router"
]
