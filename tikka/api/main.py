from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tikka.api import admin, raffle
from tikka.config import settings
from tikka.api.schemas import ErrorResponse
from tikka.core.errors import RaffleError
from tikka.main import on_shutdown, on_startup

# HTTP status per error kind; anything unlisted is a 400
STATUS_BY_KIND = {
    "not_found": 404,
    "unauthorized": 403,
    "invalid_parameters": 400,
    "invalid_state": 409,
    "sold_out": 409,
    "expired": 409,
    "not_yet_expired": 409,
    "duplicate_ticket": 409,
    "already_processed": 409,
    "already_initialized": 409,
    "zero_tickets": 409,
    "transfer_failed": 402,
    "contract_paused": 503,
    "not_initialized": 503,
    "invariant_violation": 500,
}

# documented error bodies for every router
ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in sorted(set(STATUS_BY_KIND.values()))
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await on_startup()
    yield
    await on_shutdown()


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Tikka Raffle Escrow API",
        version=settings.API_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan if use_lifespan else None,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(raffle.router, prefix="/api", responses=ERROR_RESPONSES)
    app.include_router(raffle.events_router, prefix="/api", responses=ERROR_RESPONSES)
    app.include_router(admin.router, prefix="/api", responses=ERROR_RESPONSES)

    @app.exception_handler(RaffleError)
    async def raffle_error_handler(request: Request, exc: RaffleError):
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(exc.kind, 400),
            content=ErrorResponse(kind=exc.kind, detail=exc.message).model_dump(),
        )

    # Health check
    @app.get("/api/health")
    async def health():
        """Health check endpoint"""
        return {
            "status": "ok",
            "version": settings.API_VERSION
        }

    return app


app = create_app()
