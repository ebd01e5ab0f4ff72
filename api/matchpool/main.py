import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import LOG_LEVEL, ROUND_TICK_SECONDS, RUN_SCHEDULER
from .database import Base, SessionLocal, engine
from .errors import MatchPoolError
from .jobs import PoolMatcherJob
from .routes import include_modular_routers
from .services.rounds import RoundScheduler

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Matching Pool API")
include_modular_routers(app)

scheduler = RoundScheduler()
matcher_job = PoolMatcherJob(scheduler, interval_seconds=ROUND_TICK_SECONDS)


@app.exception_handler(MatchPoolError)
def handle_match_pool_error(request: Request, exc: MatchPoolError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "code": exc.code})


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    Base.metadata.create_all(bind=engine)
    if RUN_SCHEDULER:
        matcher_job.start()
    else:
        logger.info("[JOBS] RUN_SCHEDULER is off; rounds run only via trigger or scripts/run_rounds.py")


@app.on_event("shutdown")
def on_shutdown() -> None:
    matcher_job.stop()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
