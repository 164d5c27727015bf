from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time

from .core.config import settings
from .core.cache import cache
from .core.database import close_db_connections
from .core.error_handlers import register_exception_handlers
from .core.logging import setup_logging
from .services.chat.runtime import ChatRuntime

# Import all routers
from .routers import health, notifications, admin_chat
from .routers.chat import chat_routers, websocket_router

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} chat service ({settings.environment})")

    app.state.chat_runtime = ChatRuntime(close_replaced_connections=settings.close_replaced_connections)
    await cache.connect()

    yield

    logger.info(f"Shutting down {settings.app_name} chat service")
    await app.state.chat_runtime.shutdown()
    await cache.disconnect()
    await close_db_connections()
    logger.info("Shutdown complete")

app = FastAPI(
    title="MedLink Chat API",
    description="Patient, nurse and doctor messaging with live notifications",
    version=settings.app_version,
    lifespan=lifespan
)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

register_exception_handlers(app)

# Include all routers
app.include_router(health.router)
for chat_router in chat_routers:
    app.include_router(chat_router)
app.include_router(websocket_router)
app.include_router(notifications.router)
app.include_router(admin_chat.router)

@app.get("/")
async def root():
    return {
        "message": f"{settings.app_name} chat API",
        "version": settings.app_version,
        "features": ["Patient-Doctor chat", "Patient-Nurse chat", "Care team chat", "Live notifications"],
        "status": "active"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
