# workforce/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc

from workforce.config import get_settings
from workforce.container import build_container
from workforce.database import Base
from workforce.routers import attendance, cron, notifications

logger = logging.getLogger(__name__)

app = FastAPI(title="Workforce - Attendance & Notifications", version="1.0")

# Include Routers
app.include_router(attendance.router)
app.include_router(notifications.router)
app.include_router(cron.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.on_event("startup")
async def startup_event():
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # tests install their own container before startup
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container(settings)
    container = app.state.container

    # Create DB Tables (for local runs; use Alembic in prod)
    if container.engine is not None:
        async with container.engine.begin() as conn:
            try:
                await conn.run_sync(Base.metadata.create_all)
            except sa_exc.IntegrityError as e:
                msg = str(getattr(e, "orig", e))
                if "duplicate key value violates unique constraint" in msg or "already exists" in msg:
                    logging.warning("Ignored duplicate DDL error during create_all: %s", msg)
                else:
                    raise

    if container.settings.SCHEDULER_ENABLED:
        container.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    container = getattr(app.state, "container", None)
    if container is None:
        return
    await container.scheduler.stop()
    if container.engine is not None:
        await container.engine.dispose()


@app.get("/")
def read_root():
    return {"message": "Workforce attendance service"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("workforce.main:app", host="0.0.0.0", port=8000, reload=True)
