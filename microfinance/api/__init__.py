"""
Microfinance API Application Factory
"""

from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .auth import MicrofinanceSystem, get_system, require_role
from .handlers import register_exception_handlers
from .customers import router as customers_router
from .financials import router as financials_router
from .loans import router as loans_router
from .collections import router as collections_router
from .user_activities import router as user_activities_router
from .users import router as users_router
from .session import router as session_router
from .portal import router as portal_router
from .reports import router as reports_router
from .. import __version__
from ..config import get_config
from ..users import UserRole


def create_app(system: Optional[MicrofinanceSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Use this system instead of the process-wide one (tests)
    """
    app = FastAPI(
        title="Microfinance Back-Office API",
        description="Customers, personal and group loans, collections and reporting",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    config = system.config if system else get_config()
    origins = [origin.strip() for origin in config.cors_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    if system is not None:
        app.dependency_overrides[get_system] = lambda: system

    # Include routers
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(financials_router, prefix="/financials", tags=["Financials"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(collections_router, prefix="/collections", tags=["Collections"])
    app.include_router(user_activities_router, prefix="/userActivities", tags=["User Activities"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(session_router, prefix="/session", tags=["Session"])
    app.include_router(portal_router, prefix="/portal", tags=["Customer Portal"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "microfinance_api",
            "version": __version__
        }

    @app.post("/cache/refresh", tags=["Admin"])
    async def refresh_cache(
        user=Depends(require_role(UserRole.ADMIN)),
        system: MicrofinanceSystem = Depends(get_system)
    ):
        """Reload every collection from the backing store"""
        return {"refreshed": await system.storage.refresh()}

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Microfinance Back-Office API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "customers": "/customers",
                "financials": "/financials",
                "loans": "/loans",
                "collections": "/collections",
                "userActivities": "/userActivities",
                "users": "/users",
                "session": "/session",
                "portal": "/portal",
                "reports": "/reports",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 9002, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "microfinance.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
