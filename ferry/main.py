import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ferry.config import settings
from ferry.logging_config import setup_logging
from ferry.exceptions import BookingDomainError, ErrorCode
from ferry.bookings.router import router as bookings_router, refunds_router
from ferry.trips.router import router as trips_router
from ferry.fares.router import router as fares_router
from ferry.restrictions.router import router as restrictions_router

setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Ferry ticketing: trips, seat inventory, bookings and refunds",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(BookingDomainError)
async def booking_domain_error_handler(request: Request, exc: BookingDomainError):
    """Business-rule violations become typed error payloads"""
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Something went wrong. Please try again later.",
                "code": ErrorCode.INTERNAL_ERROR.value,
                "details": {},
                "type": "InternalError"
            }
        }
    )

# Include routers
app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Bookings & Tickets"]
)

app.include_router(
    refunds_router,
    prefix=f"{settings.API_V1_STR}/refunds",
    tags=["Refunds"]
)

app.include_router(
    trips_router,
    prefix=f"{settings.API_V1_STR}/trips",
    tags=["Trips & Inventory"]
)

app.include_router(
    fares_router,
    prefix=f"{settings.API_V1_STR}/fares",
    tags=["Fares"]
)

app.include_router(
    restrictions_router,
    prefix=f"{settings.API_V1_STR}/restrictions",
    tags=["Passenger Restrictions"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    from ferry.database import init_db

    if settings.is_development():
        init_db()
    uvicorn.run(app, host="0.0.0.0", port=8000)
