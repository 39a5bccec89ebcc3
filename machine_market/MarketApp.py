import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from machine_market.db.base import Base
from machine_market.db.deps import get_market_db
from machine_market.db.session import engine_market
from machine_market.schemas.machines import MachineCreate, MachineUpdate
from machine_market.schemas.records import InspectionCreate, MaintenanceCreate
from machine_market.schemas.rentals import CreateRentalDto, RentalStatusUpdate
from machine_market.services.errors import InvalidInputError, MarketError
from machine_market.services.identity_service import Identity, decode_identity, extract_bearer_token
from machine_market.services.inspection_service import (
    create_inspection_report,
    get_latest_inspection,
    serialize_inspection,
)
from machine_market.services.listing_service import ListingQuery, search_listings
from machine_market.services.machine_service import (
    create_machine,
    delete_machine,
    require_machine,
    serialize_machine,
    update_machine,
)
from machine_market.services.maintenance_service import (
    add_maintenance_record,
    get_maintenance_history,
    serialize_maintenance,
)
from machine_market.services.rental_service import (
    create_rental_request,
    get_my_rentals,
    get_owner_rentals,
    serialize_rental,
    update_rental_status,
)
from machine_market.services.upload_service import MAX_UPLOAD_BYTES, BlobStore, LocalBlobStore, default_upload_dir, store_image


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _parse_bool_env(name: str, default: str) -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


logging.basicConfig(
    level=getattr(logging, str(os.environ.get("LOG_LEVEL") or "INFO").strip().upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
APP_LOGGER = logging.getLogger("machine_market.app")

UPLOADS_DIR = default_upload_dir()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if _parse_bool_env("AUTO_CREATE_SCHEMA", "true"):
        Base.metadata.create_all(bind=engine_market)
        APP_LOGGER.info("Schema ensured on %s", engine_market.url.render_as_string(hide_password=True))
    yield


app = FastAPI(title="Machine Marketplace API", lifespan=lifespan)

_CORS_ALLOW_ORIGINS = _parse_csv_env("CORS_ALLOW_ORIGINS", "*")
_CORS_ALLOW_CREDENTIALS = _parse_bool_env("CORS_ALLOW_CREDENTIALS", "true")
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.mount("/uploads", StaticFiles(directory=str(UPLOADS_DIR), check_dir=False), name="uploads")


@app.exception_handler(MarketError)
async def handle_market_error(_request: Request, exc: MarketError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(_request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "Invalid input"
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid input: {location}: {message}" if location else "Invalid input"},
    )


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(request: Request, exc: SQLAlchemyError):
    APP_LOGGER.exception("Store failure path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def require_identity(authorization: str | None = Header(None)) -> Identity:
    return decode_identity(extract_bearer_token(authorization))


def get_blob_store() -> BlobStore:
    return LocalBlobStore(UPLOADS_DIR)


@app.get("/")
def index():
    return {"message": "Welcome to the Machine Marketplace API"}


@app.get("/health")
def healthcheck():
    return {"status": "OK"}


@app.get("/api/health")
def healthcheck_api(db: Session = Depends(get_market_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "OK"}
    except SQLAlchemyError as exc:
        APP_LOGGER.warning("Health check failed: %s", exc)
        raise HTTPException(status_code=503, detail="db_unavailable") from exc


@app.get("/api/machines")
def get_all_listings(
    q: str | None = Query(None),
    category: str | None = Query(None),
    manufacturer: str | None = Query(None),
    location: str | None = Query(None),
    listing_type: str | None = Query(None, alias="type"),
    min_price: str | None = Query(None),
    max_price: str | None = Query(None),
    sort: str | None = Query(None),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: Session = Depends(get_market_db),
):
    query = ListingQuery.from_params(
        q=q,
        category=category,
        manufacturer=manufacturer,
        location=location,
        type=listing_type,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        page=page,
        limit=limit,
    )
    return search_listings(db, query)


@app.get("/api/machines/{machine_id}")
def get_listing(machine_id: str, db: Session = Depends(get_market_db)):
    return serialize_machine(require_machine(db, machine_id))


@app.post("/api/machines", status_code=201)
def create_listing(
    payload: MachineCreate,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    return serialize_machine(create_machine(db, identity, payload))


@app.put("/api/machines/{machine_id}")
def update_listing(
    machine_id: str,
    payload: MachineUpdate,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    return serialize_machine(update_machine(db, identity, machine_id, payload))


@app.delete("/api/machines/{machine_id}")
def delete_listing(
    machine_id: str,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    delete_machine(db, identity, machine_id)
    return {"message": "Listing deleted successfully"}


@app.get("/api/machines/{machine_id}/inspection")
def get_machine_inspection(machine_id: str, db: Session = Depends(get_market_db)):
    return serialize_inspection(get_latest_inspection(db, machine_id))


@app.post("/api/inspections", status_code=201)
def create_inspection(
    payload: InspectionCreate,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    return serialize_inspection(create_inspection_report(db, identity, payload))


@app.get("/api/machines/{machine_id}/maintenance")
def get_machine_maintenance(machine_id: str, db: Session = Depends(get_market_db)):
    return [serialize_maintenance(record) for record in get_maintenance_history(db, machine_id)]


@app.post("/api/maintenance", status_code=201)
def create_maintenance(
    payload: MaintenanceCreate,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    return serialize_maintenance(add_maintenance_record(db, identity, payload))


@app.post("/api/rentals", status_code=201)
def create_rental(
    payload: CreateRentalDto,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    rental = create_rental_request(db, identity, payload.machine_id, payload.start_date, payload.end_date)
    return serialize_rental(rental, include_machine=False)


@app.get("/api/rentals/my")
def get_rentals_as_renter(identity: Identity = Depends(require_identity), db: Session = Depends(get_market_db)):
    return [serialize_rental(rental) for rental in get_my_rentals(db, identity)]


@app.get("/api/rentals/manage")
def get_rentals_as_owner(identity: Identity = Depends(require_identity), db: Session = Depends(get_market_db)):
    return [serialize_rental(rental) for rental in get_owner_rentals(db, identity)]


@app.put("/api/rentals/{rental_id}/status")
def change_rental_status(
    rental_id: str,
    payload: RentalStatusUpdate,
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_market_db),
):
    return serialize_rental(update_rental_status(db, identity, rental_id, payload.status))


@app.post("/api/upload", status_code=201)
def upload_image(
    file: UploadFile | None = File(None),
    identity: Identity = Depends(require_identity),
    store: BlobStore = Depends(get_blob_store),
):
    if file is None:
        raise InvalidInputError("No file uploaded")
    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    url = store_image(store, file.filename, data)
    APP_LOGGER.info("Upload stored url=%s user_id=%s", url, identity.user_id)
    return {"url": url}
