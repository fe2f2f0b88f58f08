"""FastAPI application exposing the menu, admin and translation endpoints."""

import logging
from typing import Dict

from fastapi import FastAPI, HTTPException

from app.api.routes.admin import router as admin_router
from app.api.routes.auth import router as auth_router
from app.api.routes.public import router as public_router
from app.api.routes.translate import router as translate_router
from app.config.supabase_client import SUPABASE_ANON_KEY, SUPABASE_URL

app = FastAPI(title="Riverside Terrace Menu")
logger = logging.getLogger(__name__)

app.include_router(public_router, prefix="/api", tags=["Menu"])
app.include_router(translate_router, prefix="/api", tags=["Translation"])
app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/config")
def supabase_config() -> Dict[str, str]:
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise HTTPException(status_code=500, detail="Supabase configuration missing.")
    return {"supabaseUrl": SUPABASE_URL, "supabaseAnonKey": SUPABASE_ANON_KEY}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="127.0.0.1", port=8000, reload=True)
