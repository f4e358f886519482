from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
import structlog

from hamromart.version import VERSION
from hamromart.core.errors import StorefrontError
from hamromart.core.logging import configure_logging, add_context, clear_context
from hamromart.api.v1 import (
    routes_auth, routes_catalog, routes_cart, routes_orders,
    routes_admin_catalog, routes_admin_orders, routes_admin_users, routes_admin_reports,
)

logger = structlog.get_logger(__name__)

instrumentator = Instrumentator()

app = FastAPI(title='HamroMart', version=VERSION)

instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

@app.middleware("http")
async def request_context(request: Request, call_next):
    clear_context()
    add_context(method=request.method, path=request.url.path)
    return await call_next(request)

@app.exception_handler(StorefrontError)
async def storefront_error(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.warning("request_failed", error=type(exc).__name__, service=getattr(exc, "service", None),
                       message=exc.message)
    else:
        logger.info("request_rejected", error=type(exc).__name__, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'hamromart','version':VERSION}

@app.on_event("startup")
async def startup_event():
    configure_logging()
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("route_registered", methods=sorted(route.methods), path=route.path)

app.include_router(routes_auth.router, prefix='/api/v1/auth', tags=['auth'])
app.include_router(routes_catalog.router, prefix='/api/v1/catalog', tags=['catalog'])
app.include_router(routes_cart.router, prefix='/api/v1/cart', tags=['cart'])
app.include_router(routes_orders.router, prefix='/api/v1/orders', tags=['orders'])
app.include_router(routes_admin_reports.router, prefix='/api/v1/admin', tags=['admin'])
app.include_router(routes_admin_catalog.router, prefix='/api/v1/admin', tags=['admin'])
app.include_router(routes_admin_orders.router, prefix='/api/v1/admin/orders', tags=['admin'])
app.include_router(routes_admin_users.router, prefix='/api/v1/admin', tags=['admin'])
