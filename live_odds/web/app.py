from __future__ import annotations

from fastapi import FastAPI

app = FastAPI(title="Live Odds", version="0.1.0")


def setup_routes() -> None:
    from live_odds.web.routes import router
    app.include_router(router)
