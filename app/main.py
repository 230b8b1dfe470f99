from fastapi import FastAPI

from app.branchops.api import api_router
from app.branchops.core.config import settings
from app.branchops.core.errors import setup_exception_handlers
from app.branchops.core.logging import configure_logging
from app.branchops.middleware.observability import ObservabilityMiddleware
from app.branchops.middleware.principal import PrincipalContextMiddleware
from app.branchops.middleware.trace import TraceIdMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(PrincipalContextMiddleware)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
