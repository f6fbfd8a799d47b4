import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ai_attendance.bootstrap import ensure_attendance_collection
from ai_attendance.config import load_settings
from ai_attendance.dependencies import Services, build_services
from ai_attendance.routes.attendance import router as attendance_router
from ai_attendance.routes.auth import router as auth_router
from ai_attendance.routes.dashboard import router as dashboard_router
from ai_attendance.utils.logger import get_logger

logger = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting AI Attendance API")
        app.state.services = services or build_services(load_settings())
        if not ensure_attendance_collection(app.state.services.records):
            logger.error("There was a problem setting up the attendance collection")
        app.state.services.aggregator.start()
        yield
        app.state.services.aggregator.stop()
        logger.info("🛑 Shutting down")

    app = FastAPI(title="AI Attendance API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"status": "online", "service": "AI Attendance API"}

    # Healthcheck endpoint for deployment monitoring
    @app.get("/health")
    def health():
        aggregator = app.state.services.aggregator
        return {
            "status": "ok",
            "dashboard_listening": aggregator.running,
            "dashboard_error": aggregator.view.error,
        }

    app.include_router(auth_router)
    app.include_router(attendance_router)
    app.include_router(dashboard_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("ai_attendance.main:app", host="0.0.0.0", port=port)
