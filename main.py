# --- START OF FULL main.py ---

import sys
import asyncio
import signal
import argparse
import traceback
from dotenv import load_dotenv
load_dotenv() # Load .env variables first

parser = argparse.ArgumentParser(description="Run the StudyShare WhatsApp bot backend")
parser.add_argument("--port", type=int, help="Port for the bridge API (default: PORT env or 8000)")
parser.add_argument("--no-drive-warmup", action="store_true", help="Skip the initial Google Drive walk at startup")
args = parser.parse_args()

# --- Logger Import (must happen early) ---
try:
    from tools.logger import log_info, log_error, log_warning
    log_info("main", "init", "Logger imported successfully.")
except ImportError as log_import_err:
    print(f"FATAL ERROR: Failed to import logger: {log_import_err}")
    sys.exit(1)

import uvicorn
from tools.config import PORT, APP_ENV, BOT_NAME
from tools.local_files import LocalFileIndex
from tools.drive_service import DriveService
from bridge.whatsapp_interface import app as fastapi_app, WhatsAppBridge, outgoing_whatsapp_messages, whatsapp_queue_lock
from bridge.request_router import set_bridge, get_context
from services.scheduler_service import start_scheduler, shutdown_scheduler

bridge_instance = WhatsAppBridge(outgoing_whatsapp_messages, whatsapp_queue_lock)
local_index = LocalFileIndex()
drive_service = DriveService()
set_bridge(bridge_instance, local_index=local_index, drive=drive_service)
log_info("main", "init", f"{BOT_NAME} starting... Local files: {local_index.root_dir}, Drive folders: {len(drive_service.get_folder_ids())}")


async def handle_shutdown_signal(sig: signal.Signals):
    log_warning("main", "handle_shutdown_signal", f"Received signal {sig.name}. Initiating shutdown...")
    if server:
        server.should_exit = True


async def _warm_drive_cache():
    try:
        files = await drive_service.refresh_cache()
        log_info("main", "_warm_drive_cache", f"Drive cache warmed with {len(files)} files.")
    except Exception as e:
        log_error("main", "_warm_drive_cache", "Initial Drive walk failed", e)


server: uvicorn.Server | None = None

async def main_async():
    global server
    loop = asyncio.get_running_loop()

    log_info("main", "main_async", "Starting scheduler service...")
    context = get_context()
    if start_scheduler(loop, drive_service, security=context.security if context else None):
        log_info("main", "main_async", "Scheduler service started successfully.")
    else:
        log_error("main", "main_async", "Scheduler service FAILED to start.")

    warmup_task = None
    if drive_service.get_folder_ids() and not args.no_drive_warmup:
        warmup_task = asyncio.create_task(_warm_drive_cache())

    log_level = "debug" if APP_ENV == "development" else "info"
    server_port = args.port or PORT
    log_info("main", "main_async", f"Starting FastAPI server via Uvicorn on 0.0.0.0:{server_port} (log level {log_level})")

    config = uvicorn.Config(fastapi_app, host="0.0.0.0", port=server_port, access_log=False, log_level=log_level, lifespan="on")
    server = uvicorn.Server(config)

    for sig_name in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig_name, lambda s=sig_name: asyncio.create_task(handle_shutdown_signal(s)))
        except NotImplementedError: # Windows
            signal.signal(sig_name, lambda s, f: asyncio.create_task(handle_shutdown_signal(signal.Signals(s)))) # type: ignore

    try:
        await server.serve()
    finally:
        log_info("main", "main_async", "Server stopped. Performing final cleanup...")
        shutdown_scheduler()
        if warmup_task and not warmup_task.done():
            warmup_task.cancel()
        context = get_context()
        if context:
            await context.sessions.shutdown()
        log_info("main", "main_async", "Main async process finished.")


if __name__ == "__main__":
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        log_warning("main", "__main__", "KeyboardInterrupt received. Exiting.")
        shutdown_scheduler()
        sys.exit(0)
    except Exception as e_main_run:
        log_error("main", "__main__", "Unhandled error during server execution/shutdown.", e_main_run)
        log_error("main", "__main__", f"Traceback:\n{traceback.format_exc()}")
        shutdown_scheduler()
        sys.exit(1)
    finally:
        log_info("main", "__main__", "Application exiting.")

# --- END OF FULL main.py ---
