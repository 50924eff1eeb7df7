import asyncio
import io
import logging
import sys
import threading
import traceback

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from starlette.background import BackgroundTask

router = APIRouter()
debug_router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/exit", status_code=202)
async def exit_server(request: Request):
    """Answers 202 and then starts a graceful shutdown."""
    logger.info("Shutdown signal received")
    return PlainTextResponse(
        "Shutdown initiated",
        status_code=202,
        background=BackgroundTask(request.app.state.request_shutdown),
    )


# --- Profiling ---
@debug_router.get("/tasks")
async def dump_tasks():
    """Stacks of every pending asyncio task."""
    out = io.StringIO()
    tasks = asyncio.all_tasks()
    out.write(f"{len(tasks)} tasks\n\n")
    for task in tasks:
        out.write(f"{task.get_name()}: {task!r}\n")
        task.print_stack(file=out)
        out.write("\n")
    return PlainTextResponse(out.getvalue())


@debug_router.get("/threads")
async def dump_threads():
    """Stacks of every Python thread."""
    names = {t.ident: t.name for t in threading.enumerate()}
    out = io.StringIO()
    for ident, frame in sys._current_frames().items():
        out.write(f"Thread {names.get(ident, '?')} ({ident}):\n")
        out.write("".join(traceback.format_stack(frame)))
        out.write("\n")
    return PlainTextResponse(out.getvalue())
