from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI, Form, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from sobriety.codec import EmergencyContact, encode_instant, parse_instant, utc_now
from sobriety.errors import StorageError, ValidationError
from sobriety.kvstore import SqliteKeyValueStore, init_db
from sobriety.milestones import MilestoneTracker, is_glow_day
from sobriety.preferences import AppPreferences
from sobriety.progress import elapsed, growth_stage
from sobriety.quotes import quote_of_day
from sobriety.storage import StorageService

logger = logging.getLogger(__name__)

APP_DIR = Path(__file__).resolve().parent

app = FastAPI(title="Sobriety Tracker")
templates = Jinja2Templates(directory=APP_DIR / "templates")

storage = StorageService(SqliteKeyValueStore())
tracker = MilestoneTracker(storage)


@app.on_event("startup")
def startup() -> None:
    init_db()


@app.exception_handler(ValidationError)
async def validation_failed(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=422)


@app.exception_handler(RequestValidationError)
async def request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
    # same body shape as ValidationError, e.g. for a non-numeric intensity field
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    return JSONResponse({"error": f"Invalid {field}: {first.get('msg', 'bad value')}"}, status_code=422)


@app.exception_handler(StorageError)
async def storage_failed(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s (%s)", request.method, request.url.path, exc, exc.kind)
    verb = "load" if request.method == "GET" else "save"
    return JSONResponse({"error": f"Unable to {verb} your data. Please try again."}, status_code=503)


async def journey_context() -> dict:
    start = await storage.get_sobriety_date()
    quote = quote_of_day()
    ctx = {
        "started": start is not None,
        "start": encode_instant(start) if start else None,
        "elapsed": None,
        "stage": None,
        "glow": False,
        "milestone": None,
        "quote": {"text": quote.text, "author": quote.author},
    }
    if start is None:
        return ctx

    current = elapsed(start, utc_now())
    try:
        milestone = await tracker.check_for_milestone(current.days)
    except StorageError as exc:
        logger.warning("Milestone check skipped: %s", exc)
        milestone = None
    ctx.update(
        {
            "elapsed": current._asdict(),
            "stage": growth_stage(current.days).value,
            "glow": is_glow_day(current.days),
            "milestone": {"days": milestone.days, "title": milestone.title, "message": milestone.message} if milestone else None,
        }
    )
    return ctx


def contact_payload(contact: EmergencyContact | None) -> dict | None:
    if contact is None:
        return None
    return {**contact.to_dict(), "tel": f"tel:{contact.dial_number}"}


@app.get("/", response_class=HTMLResponse)
async def home(request: Request) -> HTMLResponse:
    ctx = await journey_context()
    prefs = await AppPreferences.load(storage)
    contact, contact_error = None, False
    try:
        contact = await storage.get_emergency_contact()
    except StorageError as exc:
        logger.warning("Rendering journey page without emergency contact: %s", exc)
        contact_error = True
    return templates.TemplateResponse(
        request,
        "journey.html",
        {
            **ctx,
            "contact": contact_payload(contact),
            "contact_error": contact_error,
            "color_scheme": prefs.color_scheme(),
        },
    )


@app.get("/api/journey", response_class=JSONResponse)
async def journey_status() -> JSONResponse:
    return JSONResponse(await journey_context())


@app.post("/journey/start")
async def journey_start(started_at: str = Form("")) -> RedirectResponse:
    if started_at.strip():
        try:
            instant = parse_instant(started_at)
        except ValueError as exc:
            raise ValidationError(f"Could not read start time {started_at!r}") from exc
    else:
        instant = utc_now()
    await storage.set_sobriety_date(instant)
    return RedirectResponse(url="/", status_code=303)


@app.post("/journey/reset")
async def journey_reset(keep_data: bool = Form(True)) -> RedirectResponse:
    await storage.reset_journey(keep_data=keep_data)
    return RedirectResponse(url="/", status_code=303)


@app.get("/api/journal", response_class=JSONResponse)
async def journal_list() -> JSONResponse:
    entries = await storage.get_journal_entries()
    return JSONResponse([e.to_dict() for e in entries])


@app.post("/api/journal", response_class=JSONResponse)
async def journal_save(entry: str = Form("")) -> JSONResponse:
    saved = await storage.save_journal_entry(entry)
    return JSONResponse(saved.to_dict(), status_code=201)


@app.post("/api/journal/{entry_id}/delete", response_class=JSONResponse)
async def journal_delete(entry_id: str) -> JSONResponse:
    await storage.delete_journal_entry(entry_id)
    return JSONResponse({"deleted": entry_id})


@app.get("/api/urges", response_class=JSONResponse)
async def urge_list() -> JSONResponse:
    logs = await storage.get_urge_logs()
    return JSONResponse([log.to_dict() for log in logs])


@app.post("/api/urges", response_class=JSONResponse)
async def urge_save(intensity: int = Form(...), note: str = Form("")) -> JSONResponse:
    saved = await storage.save_urge_log(intensity, note or None)
    return JSONResponse(saved.to_dict(), status_code=201)


@app.get("/api/contact", response_class=JSONResponse)
async def contact_get() -> JSONResponse:
    return JSONResponse(contact_payload(await storage.get_emergency_contact()))


@app.post("/api/contact", response_class=JSONResponse)
async def contact_save(name: str = Form(""), phone: str = Form("")) -> JSONResponse:
    saved = await storage.save_emergency_contact(EmergencyContact(name=name, phone=phone))
    return JSONResponse(contact_payload(saved))


@app.post("/api/contact/clear", response_class=JSONResponse)
async def contact_clear() -> JSONResponse:
    await storage.clear_emergency_contact()
    return JSONResponse(None)


@app.get("/api/preferences", response_class=JSONResponse)
async def preferences_get() -> JSONResponse:
    prefs = await AppPreferences.load(storage)
    return JSONResponse({"theme_preference": prefs.theme_preference, "notifications_enabled": prefs.notifications_enabled})


@app.post("/api/preferences", response_class=JSONResponse)
async def preferences_save(theme_preference: str = Form("system"), notifications_enabled: bool = Form(False)) -> JSONResponse:
    prefs = AppPreferences(theme_preference=theme_preference, notifications_enabled=notifications_enabled)
    await prefs.save(storage)
    return JSONResponse({"theme_preference": prefs.theme_preference, "notifications_enabled": prefs.notifications_enabled})


@app.get("/export")
def export_data() -> JSONResponse:
    store = storage.store
    if not isinstance(store, SqliteKeyValueStore):
        return JSONResponse({"error": "Export is only available for the local database"}, status_code=501)
    return JSONResponse(store.dump())
