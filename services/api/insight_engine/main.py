import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from . import db as db_mod
from .api import analysis as analysis_router
from .api import assistant as assistant_router
from .api import insights as insights_router
from .api import profile as profile_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Financial Insight Engine API", version="0.1.0")


@app.on_event("startup")
def on_startup():
    db_mod.init_db()


# CORS for local frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis_router.router)
app.include_router(insights_router.router)
app.include_router(assistant_router.router)
app.include_router(profile_router.router)


@app.get("/", tags=["meta"])
def root():
    return {
        "name": "Financial Insight Engine API",
        "status": "ok",
        "endpoints": [
            "/health",
            "/users/{user_id}/analysis",
            "/users/{user_id}/insights",
            "/users/{user_id}/profile",
            "/assistant/ask",
            "/assistant/retry",
        ],
    }


@app.get("/health", tags=["meta"])
def health():
    # Basic DB connectivity check
    try:
        with db_mod.get_connection() as conn:
            conn.execute("SELECT 1").fetchone()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"db_error: {e}")
    return {"status": "healthy"}


def run() -> None:
    import uvicorn

    uvicorn.run("insight_engine.main:app", host="127.0.0.1", port=8000)
