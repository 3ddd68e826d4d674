# snapcaption_backend/main.py

from datetime import datetime, timezone
from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import FRONTEND_URL, IS_PRODUCTION, logger
from database import create_indexes
from routes import auth_routes, post_routes, user_routes
from services.rate_limiter import api_limiter

app = FastAPI(
    title="SnapCaption Backend API",
    version="1.0.0",
)

# -------------------------
#   CORS CONFIG
# -------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------
#   SECURITY HEADERS
# -------------------------
@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    return response


# -------------------------
#   ERROR HANDLERS
# -------------------------
@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"message": "Route not found"})
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error" if IS_PRODUCTION else str(exc)}
    )


# -------------------------
#   FEATURE-WISE ROUTERS
# -------------------------
api_dependencies = [Depends(api_limiter)]

# ✅ Authentication Module
app.include_router(
    auth_routes.router,
    prefix="/api/auth",
    tags=["Authentication"],
    dependencies=api_dependencies
)

# ✅ Posts (caption generation, feed, sharing)
app.include_router(
    post_routes.router,
    prefix="/api/posts",
    tags=["Posts"],
    dependencies=api_dependencies
)

# ✅ User Profile + Preferences
app.include_router(
    user_routes.router,
    prefix="/api/user",
    tags=["User"],
    dependencies=api_dependencies
)


# -------------------------
#   STARTUP EVENTS
# -------------------------
@app.on_event("startup")
async def startup():
    await create_indexes()


# -------------------------
#   HEALTH ENDPOINT
# -------------------------
@app.get("/health", tags=["Root"])
async def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}
