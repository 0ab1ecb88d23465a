from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from typing import Callable, List, Optional
from datetime import datetime
from urllib.parse import urlencode
import pytz
import logging
from pathlib import Path
from contextlib import asynccontextmanager

# Local imports
from admission import AdmissionController
from catalog import SessionCatalog
from config import BOOKING_CUTOFF, LOG_LEVEL, SEED_ON_STARTUP, STUDIO_TIMEZONE
from databases_sql import SqliteStore
from directory import Directory
from errors import ScheduleConflictError, StudioError
from locks import SessionLocks
from models import (
    BookingConfirmation,
    BookingOut,
    Category,
    CategoryIn,
    ReservationPage,
    ReserveRequest,
    Session,
    SessionIn,
    SessionListItem,
    SessionOut,
    SessionPatch,
    User,
    UserIn,
)
from seed_data import seed_studio
from store import Store
from utils import DISPLAY_FORMAT, clamp_pagination, format_datetime, get_timezone, utc_now

# ---------- Config ----------
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("booking_api")

router = APIRouter()


# ---------- Dependencies ----------
def get_catalog(request: Request) -> SessionCatalog:
    return request.app.state.catalog


def get_admission(request: Request) -> AdmissionController:
    return request.app.state.admission


def get_directory(request: Request) -> Directory:
    return request.app.state.directory


def _target_tz(name: str):
    try:
        return get_timezone(name)
    except pytz.UnknownTimeZoneError:
        raise HTTPException(status_code=400, detail="Invalid timezone")


# ---------- Directory ----------
@router.post("/users", response_model=User, status_code=201)
def register_user_api(req: UserIn, directory: Directory = Depends(get_directory)):
    return directory.register_user(req.name, req.email, req.role)


@router.post("/categories", response_model=Category, status_code=201)
def register_category_api(req: CategoryIn, directory: Directory = Depends(get_directory)):
    return directory.register_category(req.name, req.description)


# ---------- Sessions ----------
@router.get("/sessions", response_model=List[SessionListItem])
def list_sessions_api(
    timezone: str = Query(STUDIO_TIMEZONE),
    instructor_id: Optional[int] = None,
    category_id: Optional[int] = None,
    upcoming: bool = False,
    page: int = 1,
    limit: int = 10,
    catalog: SessionCatalog = Depends(get_catalog),
    admission: AdmissionController = Depends(get_admission),
):
    target_tz = _target_tz(timezone)
    sessions = catalog.list_sessions(instructor_id, category_id, upcoming, page, limit)
    return [
        SessionListItem(
            id=s.id,
            name=s.name,
            instructor_id=s.instructor_id,
            category_id=s.category_id,
            start=format_datetime(s.starts_at.astimezone(target_tz)),
            end=format_datetime(s.ends_at.astimezone(target_tz)),
            capacity=s.capacity,
            available_slots=admission.seats_available(s.id),
        )
        for s in sessions
    ]


@router.get("/sessions/{session_id}", response_model=SessionOut)
def get_session_api(
    session_id: int,
    catalog: SessionCatalog = Depends(get_catalog),
    admission: AdmissionController = Depends(get_admission),
):
    session = catalog.get_session(session_id)
    return SessionOut(**session.model_dump(), available_slots=admission.seats_available(session_id))


@router.post("/sessions", response_model=Session, status_code=201)
def create_session_api(req: SessionIn, catalog: SessionCatalog = Depends(get_catalog)):
    return catalog.create_session(
        req.instructor_id, req.category_id, req.name, req.starts_at, req.ends_at, req.capacity
    )


@router.patch("/sessions/{session_id}", response_model=Session)
def update_session_api(session_id: int, patch: SessionPatch, catalog: SessionCatalog = Depends(get_catalog)):
    return catalog.update_session(session_id, patch)


@router.delete("/sessions/{session_id}")
def delete_session_api(session_id: int, catalog: SessionCatalog = Depends(get_catalog)):
    catalog.delete_session(session_id)
    return {"message": "Fitness class deleted successfully"}


# ---------- Reservations ----------
@router.post("/sessions/{session_id}/reservations", response_model=BookingConfirmation, status_code=201)
def reserve_api(session_id: int, req: ReserveRequest, admission: AdmissionController = Depends(get_admission)):
    reservation = admission.reserve(req.member_id, session_id)
    return BookingConfirmation(
        reservation=reservation,
        message="Fitness class booked successfully",
        available_slots=admission.seats_available(session_id),
    )


@router.delete("/sessions/{session_id}/reservations/{member_id}")
def cancel_api(session_id: int, member_id: int, admission: AdmissionController = Depends(get_admission)):
    admission.cancel(member_id, session_id)
    return {"message": "Booking cancelled successfully"}


@router.get("/sessions/{session_id}/reservations", response_model=ReservationPage)
def session_reservations_api(
    session_id: int,
    page: int = 1,
    limit: int = 10,
    admission: AdmissionController = Depends(get_admission),
):
    page, limit = clamp_pagination(page, limit)
    items = admission.list_session_reservations(session_id, page, limit)
    return ReservationPage(page=page, limit=limit, items=items)


@router.delete("/reservations/{reservation_id}")
def cancel_reservation_api(reservation_id: int, admission: AdmissionController = Depends(get_admission)):
    admission.cancel_reservation(reservation_id)
    return {"message": "Booking cancelled successfully"}


@router.get("/members/{member_id}/reservations", response_model=List[BookingOut])
def member_reservations_api(
    member_id: int,
    tz: str = Query(STUDIO_TIMEZONE),
    page: int = 1,
    limit: int = 10,
    catalog: SessionCatalog = Depends(get_catalog),
    admission: AdmissionController = Depends(get_admission),
):
    target_tz = _target_tz(tz)
    out = []
    for r in admission.list_member_reservations(member_id, page, limit):
        session = catalog.get_session(r.session_id)
        out.append(
            BookingOut(
                id=r.id,
                session_id=session.id,
                session_name=session.name,
                session_start_local=format_datetime(session.starts_at.astimezone(target_tz)),
                member_id=r.member_id,
                booked_at_utc=r.created_at,
            )
        )
    return out


# ---------- HTML Frontend ----------
@router.get("/", response_class=HTMLResponse)
def home(
    request: Request,
    tz: str = STUDIO_TIMEZONE,
    message: str = None,
    status: str = None,
    catalog: SessionCatalog = Depends(get_catalog),
    admission: AdmissionController = Depends(get_admission),
):
    try:
        target_tz = get_timezone(tz)
    except pytz.UnknownTimeZoneError:
        tz = STUDIO_TIMEZONE
        target_tz = get_timezone(tz)

    sessions_data = []
    for s in catalog.list_sessions(upcoming_only=True, limit=100):
        sessions_data.append({
            "id": s.id,
            "name": s.name,
            "instructor_id": s.instructor_id,
            "start": s.starts_at.astimezone(target_tz),
            "end": s.ends_at.astimezone(target_tz),
            "available": admission.seats_available(s.id),
        })

    return templates.TemplateResponse(
        request,
        "sessions.html",
        {
            "sessions": sessions_data,
            "current_tz": tz,
            "message": message,
            "status": status,
            "now": format_datetime(datetime.now(target_tz)),
        },
    )


@router.post("/reserve-form")
def reserve_form(
    session_id: int = Form(...),
    email: str = Form(...),
    directory: Directory = Depends(get_directory),
    admission: AdmissionController = Depends(get_admission),
):
    member = directory.find_user_by_email(email)
    if member is None:
        query = {"message": "Member not found", "status": "error"}
    else:
        try:
            admission.reserve(member.id, session_id)
            query = {"message": "Booking successful!", "status": "success"}
        except StudioError as e:
            query = {"message": e.message, "status": "error"}
    return RedirectResponse(url=f"/?{urlencode(query)}", status_code=303)


# ---------- Jinja Filter ----------
def datetimeformat(value, format=DISPLAY_FORMAT):
    if isinstance(value, datetime):
        return value.strftime(format)
    return datetime.fromisoformat(value).strftime(format)


templates.env.filters["datetimeformat"] = datetimeformat


# ---------- Error Handlers ----------
async def studio_error_handler(request: Request, exc: StudioError):
    body = {"detail": exc.message}
    if isinstance(exc, ScheduleConflictError):
        body["conflicts"] = jsonable_encoder(exc.conflicts)
    return JSONResponse(status_code=exc.status_code, content=body)



# ---------- App Factory ----------
def create_app(
    store: Optional[Store] = None,
    clock: Callable[[], datetime] = utc_now,
    seed: bool = SEED_ON_STARTUP,
) -> FastAPI:
    store = store if store is not None else SqliteStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.init()
        if seed:
            seed_studio(store)
        logger.info("Store initialized%s.", " and seeded" if seed else "")
        yield
        logger.info("Application shutting down.")

    app = FastAPI(title="Fitness Studio Booking API", lifespan=lifespan)
    locks = SessionLocks()
    app.state.store = store
    app.state.directory = Directory(store)
    app.state.catalog = SessionCatalog(store, locks, clock)
    app.state.admission = AdmissionController(store, locks, clock, BOOKING_CUTOFF)
    app.include_router(router)
    app.add_exception_handler(StudioError, studio_error_handler)
    return app


app = create_app()


# ---------- Run ----------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
