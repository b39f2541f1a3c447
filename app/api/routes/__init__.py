from .admin_route import router as admin_router
from .auth_route import router as auth_router
from .conversations_route import router as conversations_router
from .listings import router as listings_router
from .profile_route import router as profile_router
from .reviews_route import router as reviews_router
from .transactions_route import router as transactions_router

__all__ = [
    "admin_router",
    "auth_router",
    "conversations_router",
    "listings_router",
    "profile_router",
    "reviews_router",
    "transactions_router",
]
