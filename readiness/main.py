from __future__ import annotations

"""FastAPI surface for the readiness engine."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from readiness.models.domain import IntakeProfile, SimulationResult, SimulationSettings
from readiness.models.ruleset import DEFAULT_RULESET, Ruleset, load_ruleset
from readiness.simulation.engine import simulate

logger = logging.getLogger(__name__)

RULESET_PATH_ENV = "READINESS_RULESET_PATH"
TIMEOUT_ENV = "READINESS_TIMEOUT_SECONDS"
WORKERS_ENV = "READINESS_WORKERS"
DEFAULT_TIMEOUT_SECONDS = 30.0


class RulesetStore:
    """Holds the one ruleset this process serves assessments with.

    The ruleset is resolved once at startup (from a JSON file when
    `READINESS_RULESET_PATH` is set, else the built-in defaults) and handed to
    the engine explicitly on every call; nothing mutates it afterwards.
    """
    def __init__(self, ruleset: Ruleset) -> None:
        self.ruleset = ruleset

    @classmethod
    def from_env(cls) -> "RulesetStore":
        path = os.environ.get(RULESET_PATH_ENV)
        if not path:
            return cls(DEFAULT_RULESET)
        return cls(load_ruleset(path))

    def get(self) -> Ruleset:
        return self.ruleset


class SimulateRequest(BaseModel):
    """Intake profile plus optional per-call settings (seed, trial override)."""
    intake: IntakeProfile
    settings: Optional[SimulationSettings] = None


def _timeout_seconds() -> float:
    return float(os.environ.get(TIMEOUT_ENV, DEFAULT_TIMEOUT_SECONDS))


def _pool_workers() -> int:
    """Worker threads available to concurrent simulations.

    A run that overran its deadline keeps its thread until it finishes, so the
    pool is sized above the CPU count. Override with `READINESS_WORKERS`.
    """
    default = min(32, (os.cpu_count() or 1) + 4)
    return max(1, int(os.environ.get(WORKERS_ENV, default)))


store = RulesetStore.from_env()
app = FastAPI(title="Retirement Readiness", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Simulations run off the event loop so a request deadline can be enforced.
_pool = ThreadPoolExecutor(max_workers=_pool_workers())


@app.get("/health")
def health() -> dict:
    """Lightweight liveness probe."""
    return {"status": "ok"}


@app.get("/ruleset")
def get_ruleset() -> Ruleset:
    """Return the assumptions every assessment in this process is scored with."""
    return store.get()


@app.post("/simulate")
def run_simulation(request: SimulateRequest) -> SimulationResult:
    """Assess a validated intake profile and return the full report.

    Schema violations never reach this handler (FastAPI answers 422); an
    intake with no retirement years to simulate is also answered with 422. A
    run that outlives the configured deadline is abandoned with a 504 and its
    result discarded. `cancel` only stops a run still queued; one already
    running holds its worker thread until it completes.
    """
    future = _pool.submit(simulate, request.intake, store.get(), request.settings)
    try:
        return future.result(timeout=_timeout_seconds())
    except FutureTimeoutError:
        future.cancel()
        logger.warning("simulation exceeded %.1fs deadline", _timeout_seconds())
        raise HTTPException(status_code=504, detail="Simulation timed out")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
