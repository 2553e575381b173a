import asyncio
import logging
from contextlib import suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import admin, auth, pills, reminders
from config.settings import get_settings
from config.supabase import SupabaseError, get_supabase_service_client, test_connection
from services.notifications import get_reminder_scheduler
from services.pills import schedule_all_pills
from utils.errors import register_exception_handlers

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(title="PillTracker API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update with specific origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(pills.router)
app.include_router(reminders.router)
app.include_router(admin.router)


@app.on_event("startup")
async def startup():
    scheduler = get_reminder_scheduler()

    if await test_connection():
        try:
            await schedule_all_pills(get_supabase_service_client(), scheduler)
        except ValueError:
            logger.info("No service key configured, reminders are scheduled as pills are added")
        except SupabaseError as e:
            logger.warning(f"Could not restore reminders: {e.message}")
    else:
        logger.warning("Supabase connection failed, running without restored reminders")

    app.state.reminder_task = asyncio.create_task(scheduler.run(settings.reminder_poll_seconds))


@app.on_event("shutdown")
async def shutdown():
    task = getattr(app.state, "reminder_task", None)
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


@app.get("/")
async def health_check():
    return {
        "status": "healthy",
        "service": "PillTracker API",
        "timing_window": settings.timing_window,
        "pending_reminders": len(get_reminder_scheduler().pending()),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
