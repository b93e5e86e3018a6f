# backend/app.py
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import bridge
import crud
from audit import AuditTrail
from db import (
    CORS_ORIGINS, CREATE_TABLES, LOG_LEVEL, MAX_PAGE_SIZE, MAX_UPLOAD_BYTES, PAGE_SIZE,
    Base, engine, get_db,
)
from errors import PersistenceError, TrackerError, ValidationFailed
from models import Tracker
from schemas import (
    AnyTracker, HeaderBatch, HeaderOut, ImportResult, InitializeResult, Message, Page,
    RootTracker, RowIn, RowOut, SetHeadersResult, TableData, TrackerCreate, TrackerItem,
    TrackerUpdate,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("tracker_api")

@asynccontextmanager
async def lifespan(_app: FastAPI):
    if CREATE_TABLES:
        Base.metadata.create_all(engine)
        logger.info("database tables ensured")
    yield

# -----------------------------------------------------------------------------
# CORS
allow_origins = [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]

app = FastAPI(title="Tracker Table API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# Errors
@app.exception_handler(TrackerError)
async def tracker_error(request: Request, exc: TrackerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError):
    logger.error("database failure on %s %s", request.method, request.url.path, exc_info=exc)
    err = PersistenceError("A database error occurred; the operation was not completed.")
    return JSONResponse(status_code=err.status_code, content={"message": err.message})

# -----------------------------------------------------------------------------
# Dependencies
def get_audit(request: Request, background_tasks: BackgroundTasks) -> AuditTrail:
    return AuditTrail(background_tasks, request.headers.get("X-User", "anonymous"))

def tracker_or_404(tracker_id: int, db: Session = Depends(get_db)) -> Tracker:
    return crud.get_tracker(db, tracker_id)

def kind_of(t) -> str:
    return "tracker item" if t.parent_id is not None else "tracker"

def headers_out(db: Session, tracker_id: int) -> List[HeaderOut]:
    return [HeaderOut.model_validate(h) for h in crud.list_headers(db, tracker_id)]

# -----------------------------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True}

# -----------------------------------------------------------------------------
# Trackers
@app.get("/trackers", response_model=Page[RootTracker])
def list_trackers(
    page: int = Query(1, ge=1),
    size: int = Query(PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    return crud.list_roots(db, search, page, size)

@app.get("/trackers/parent/{parent_id}", response_model=List[TrackerItem])
def list_tracker_items(parent_id: int, db: Session = Depends(get_db)):
    return crud.list_items(db, parent_id)

@app.get("/trackers/{tracker_id}", response_model=AnyTracker)
def get_tracker(tracker: Tracker = Depends(tracker_or_404)):
    return crud.to_variant(tracker)

@app.post("/trackers", response_model=AnyTracker, status_code=201)
def create_tracker(
    payload: TrackerCreate,
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    t = crud.create_tracker(db, payload)
    audit.emit("CREATE", f'Created new {kind_of(t)}: "{t.name}"', entity_id=t.id)
    return crud.to_variant(t)

@app.put("/trackers/{tracker_id}", response_model=AnyTracker)
def update_tracker(
    tracker_id: int,
    payload: TrackerUpdate,
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    t = crud.update_tracker(db, tracker_id, payload)
    audit.emit("UPDATE", f'Updated {kind_of(t)}: "{t.name}"', entity_id=t.id)
    return crud.to_variant(t)

@app.delete("/trackers/{tracker_id}", response_model=Message)
def delete_tracker(
    tracker_id: int,
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    gone = crud.delete_tracker(db, tracker_id)
    kind = "tracker item" if gone.kind == "item" else "tracker"
    audit.emit("DELETE", f'Deleted {kind}: "{gone.name}"', entity_id=tracker_id)
    return {"message": "Tracker was deleted successfully!"}

# -----------------------------------------------------------------------------
# Headers
@app.get("/trackers/{tracker_id}/headers", response_model=List[HeaderOut])
def list_headers(
    enabled_only: bool = Query(False),
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
):
    return crud.list_headers(db, tracker.id, only_enabled=enabled_only)

@app.post("/trackers/{tracker_id}/headers/initialize", response_model=InitializeResult)
def initialize_headers(
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    created = crud.initialize_headers(db, tracker.id)
    if created:
        audit.emit("CREATE", f'Initialized default columns for {kind_of(tracker)}: "{tracker.name}"',
                   entity_type="tracker_header", entity_id=tracker.id)
    return {
        "initialized": created,
        "message": "Headers initialized." if created else "Headers already initialized.",
        "headers": headers_out(db, tracker.id),
    }

@app.put("/trackers/{tracker_id}/headers", response_model=SetHeadersResult)
def set_headers(
    body: HeaderBatch,
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    counts = crud.set_headers(db, tracker.id, body.headers)
    audit.emit(
        "UPDATE",
        f'Updated columns for {kind_of(tracker)}: "{tracker.name}" '
        f'({counts["inserted"]} added, {counts["updated"]} changed)',
        entity_type="tracker_header", entity_id=tracker.id,
    )
    return {**counts, "headers": headers_out(db, tracker.id)}

# -----------------------------------------------------------------------------
# Rows
@app.get("/trackers/{tracker_id}/rows", response_model=Page[RowOut])
def list_rows(
    page: int = Query(1, ge=1),
    size: int = Query(PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
):
    return crud.list_rows(db, tracker.id, page, size)

@app.get("/trackers/{tracker_id}/table-data", response_model=TableData)
def table_data(
    page: int = Query(1, ge=1),
    size: int = Query(PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
):
    return {
        "headers": headers_out(db, tracker.id),
        "rows": crud.list_rows(db, tracker.id, page, size),
    }

@app.post("/trackers/{tracker_id}/rows", response_model=RowOut, status_code=201)
def create_row(
    body: RowIn,
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    row = crud.create_row(db, tracker.id, body.data)
    audit.emit("CREATE", f'Added a row to {kind_of(tracker)}: "{tracker.name}"',
               entity_type="tracker_row", entity_id=row.id)
    return row

@app.put("/trackers/{tracker_id}/rows/{row_id}", response_model=RowOut)
def update_row(
    row_id: int,
    body: RowIn,
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    row = crud.update_row(db, tracker.id, row_id, body.data)
    audit.emit("UPDATE", f'Updated a row in {kind_of(tracker)}: "{tracker.name}"',
               entity_type="tracker_row", entity_id=row.id)
    return row

@app.delete("/trackers/{tracker_id}/rows/{row_id}", response_model=Message)
def delete_row(
    row_id: int,
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    crud.delete_row(db, tracker.id, row_id)
    audit.emit("DELETE", f'Deleted a row from {kind_of(tracker)}: "{tracker.name}"',
               entity_type="tracker_row", entity_id=row_id)
    return {"message": "Row was deleted successfully!"}

# -----------------------------------------------------------------------------
# Spreadsheets
def _download(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@app.get("/trackers/{tracker_id}/export")
def export_table(
    format: str = Query("xlsx"),
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    content, media_type, filename = bridge.export_file(db, tracker.id, format)
    audit.emit("EXPORT", f'Exported table data of {kind_of(tracker)}: "{tracker.name}"',
               entity_id=tracker.id)
    return _download(content, media_type, filename)

@app.get("/trackers/{tracker_id}/template")
def table_template(
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
):
    return _download(*bridge.template_file(db, tracker.id))

@app.post("/trackers/{tracker_id}/import", response_model=ImportResult)
def import_table(
    file: Optional[UploadFile] = File(None),
    tracker: Tracker = Depends(tracker_or_404),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
):
    if file is None:
        raise ValidationFailed("Please upload an Excel or CSV file.")
    content = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationFailed(f"File is larger than {MAX_UPLOAD_BYTES} bytes.")

    result = bridge.import_file(db, tracker.id, content, file.filename or "")
    audit.emit(
        "IMPORT",
        f'Imported {result.imported} of {result.attempted} rows into {kind_of(tracker)}: "{tracker.name}"',
        entity_id=tracker.id,
    )
    return result
