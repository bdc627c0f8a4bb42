from __future__ import annotations
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .actions import ActionController
from .admin import AdminController
from .api import create_admin_router, create_public_router
from .config import Settings, load_settings
from .cycle import EventCycleManager
from .errors import ExtraShareError
from .models import ConfigOut
from .rewards import RandomSource
from .store import LedgerStore

log = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    rng: Optional[RandomSource] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    ledger = LedgerStore(settings.db_path)
    cycles = EventCycleManager(settings)
    actions = ActionController(ledger, cycles, settings, rng=rng, clock=clock)
    admin = AdminController(ledger, cycles, settings, clock=clock)

    app = FastAPI(title="ExtraShare BXC backend")
    app.state.settings = settings
    app.state.ledger = ledger
    app.state.actions = actions
    app.state.admin = admin

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup():
        ledger.init_db()
        actions.initialize()
        if not settings.admin_wallet_address:
            log.warning("[startup] ADMIN_WALLET_ADDRESS not set; admin endpoints are disabled")
        log.info("[startup] db=%s", settings.db_path)

    @app.exception_handler(ExtraShareError)
    async def _extrashare_error(request: Request, exc: ExtraShareError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.get("/api/health")
    def health():
        if ledger.ping():
            return {"status": "ok", "message": "Backend is healthy and connected to DB."}
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Backend is running but the DB is not reachable."},
        )

    @app.get("/api/config", response_model=ConfigOut)
    def get_config():
        """Public reward/accrual parameters so the frontend does not hardcode them."""
        return ConfigOut(
            bxc_accrual_per_second=settings.bxc_accrual_per_second,
            initial_bxc=settings.initial_bxc,
            referral_bxc=settings.referral_bxc,
            referral_copy_bxc_bonus=settings.referral_copy_bxc_bonus,
            ain_usd_price=settings.ain_usd_price,
            reward_chance_large_win=settings.reward_chance_large_win,
            reward_chance_regular_win=settings.reward_chance_regular_win,
            reward_usd_large_min=settings.reward_usd_large_min,
            reward_usd_large_max=settings.reward_usd_large_max,
            reward_usd_regular_min=settings.reward_usd_regular_min,
            reward_usd_regular_max=settings.reward_usd_regular_max,
            lucky_winner_slot_threshold=settings.lucky_winner_slot_threshold,
            cycle_start_delay_sec=settings.cycle_start_delay_sec,
        )

    app.include_router(create_public_router(actions), prefix="/api")
    app.include_router(create_admin_router(admin), prefix="/api/admin")
    return app


app = create_app()
