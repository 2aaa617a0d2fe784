"""Storefront FastAPI application factory.

Each request runs inside the storefront domain context, with the request
path and caller bound to the structured log context.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.errors import register_error_handlers
from storefront.api.routes import cart_router, coupon_router, order_router, product_router
from storefront.domain import storefront
from storefront.utils.logging import add_context, clear_context


def create_app() -> FastAPI:
    """Build the app. The domain must already be initialized."""
    app = FastAPI(
        title="Storefront API",
        description="Shopping cart, checkout and order lifecycle",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the storefront domain context and bind the caller to the log context."""
        add_context(
            path=request.url.path,
            method=request.method,
            user_id=request.headers.get("x-user-id"),
        )
        try:
            with storefront.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        return response

    register_error_handlers(app)

    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(product_router)
    app.include_router(coupon_router)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domain": storefront.name})

    return app
