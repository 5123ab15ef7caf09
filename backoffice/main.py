from sqlalchemy import text

from backoffice.core.errors import DomainError
from backoffice.core.observability import (
    domain_error_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from backoffice.core.config import settings
from backoffice.db.session import engine
from backoffice.routers import auth, inventory, purchases, returns, sales, suppliers

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Back-office API for retail stores: inventory, purchasing, sales and returns "
        "on top of an append-only stock ledger.\n\n"
        "Swagger quick test flow:\n"
        "1. Call `POST /auth/register` or `POST /auth/login`.\n"
        "2. Click **Authorize** and use `tenant/username` + password "
        "(OAuth token URL: `/auth/token`).\n"
        "3. Test protected endpoints (`/inventory`, `/suppliers`, `/purchases`, `/sales`, `/returns`)."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "auth", "description": "Tenant registration, login and user management."},
        {"name": "inventory", "description": "Inventory items and the stock ledger."},
        {"name": "suppliers", "description": "Supplier directory."},
        {"name": "purchases", "description": "Stock receipts, supplier payments and cancellation."},
        {"name": "sales", "description": "Sales capture, editing and cancellation."},
        {"name": "returns", "description": "Purchase returns and their approval workflow."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(DomainError, domain_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(inventory.router)
app.include_router(suppliers.router)
app.include_router(purchases.router)
app.include_router(sales.router)
app.include_router(returns.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
