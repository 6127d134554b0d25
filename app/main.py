from fastapi import FastAPI

from app.errors import register_exception_handlers
from app.routers.booking import router as booking_router
from app.routers.permissions import router as permissions_router


def create_app() -> FastAPI:
    app = FastAPI(title="hotel-console-core")
    app.include_router(booking_router)
    app.include_router(permissions_router)
    register_exception_handlers(app)
    return app


app = create_app()
