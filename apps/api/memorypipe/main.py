from fastapi import Depends, FastAPI
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from memorypipe.api.transcribe_stream import router as transcribe_stream_router
from memorypipe.core.config import settings
from memorypipe.core.logging import setup_logging
from memorypipe.db.session import get_db

setup_logging("memorypipe-api", settings.log_level, settings.log_format)

app = FastAPI(title="memorypipe API", version="0.1.0")
app.include_router(transcribe_stream_router)


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool


@app.get("/health", response_model=HealthResponse)
def health(db: Session = Depends(get_db)) -> HealthResponse:
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        db_ok = False

    return HealthResponse(ok=True, service="api", version=app.version, db_ok=db_ok)
