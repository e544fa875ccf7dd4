# FILE: main.py
"""
Plutus Scan Backend - FastAPI Application
Version: 0.3.0

Observes verification requests submitted as transaction metadata, rebuilds the
referenced contracts from source and publishes the resulting script hashes.

Features:
- Background verification scheduler (poll, claim, compile, parse, hash)
- Build-artifact cache with periodic purge
- Read-only query API under /api/v1
"""
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

logging.basicConfig(
    level=os.getenv("PLUTUS_SCAN_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

from plutus_scan import __version__
from plutus_scan.config import get_config
from plutus_scan.db import init_db
from plutus_scan.verification.router import health_router, router as verification_router
from plutus_scan.verification.scheduler import CacheMaintenanceJob, VerificationScheduler

logger = logging.getLogger("plutus_scan.main")

app = FastAPI(
    title="Plutus Scan",
    version=__version__,
    description="Registry of Plutus smart contracts verified by reproducible builds",
)

# ====== CORS ======

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("PLUTUS_SCAN_CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_methods=["GET"],
    allow_headers=["*"],
)

# ====== JOBS ======

scheduler = VerificationScheduler()
cache_maintenance = CacheMaintenanceJob()


# ====== STARTUP ======

@app.on_event("startup")
async def on_startup():
    os.makedirs("data", exist_ok=True)
    init_db()

    config = get_config()
    logger.info(
        f"[startup] Verification config: poll={config.poll_interval_seconds}s, "
        f"batch={config.batch_size}, max_retries={config.max_retries}, "
        f"build_timeout={config.build_timeout_seconds}s, temp_dir={config.temp_dir}"
    )

    if config.scheduler_enabled:
        await scheduler.start()
        await cache_maintenance.start()
    else:
        logger.info("[startup] Verification scheduler: DISABLED (PLUTUS_SCAN_SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
async def on_shutdown():
    await scheduler.stop()
    await cache_maintenance.stop()


# ====== ROUTERS ======

app.include_router(health_router)
app.include_router(verification_router)


@app.get("/scheduler/status")
def scheduler_status():
    return {
        "verification": scheduler.get_status(),
        "cache_maintenance": cache_maintenance.get_status(),
    }
