import logging

from fastapi import FastAPI

from tally.config import settings
from tally.kernel.router import EvaluationState
from tally.kernel.router import router as kernel_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Tally", version="0.1.0")
app.state.evaluations = EvaluationState()
app.include_router(kernel_router)


@app.get("/")
async def root() -> dict:
    return {
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "kernel": {
            "aggregates": "/kernel/datasets/{id}/aggregates?period=day|week|month|year|anytime",
            "achievements": "/kernel/datasets/{id}/achievements",
        },
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
