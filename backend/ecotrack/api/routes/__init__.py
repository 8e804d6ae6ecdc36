
from .health import router as health_router
from .challenges import router as challenges_router

routers = [
    health_router,
    challenges_router,
]
