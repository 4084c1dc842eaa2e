from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from strikegrid.ingest.board import SignalBoard
from strikegrid.runtime.supervisor import Orchestrator

ENGINE = "strikegrid"
VERSION = "0.1.0"


def create_app(orchestrator: Orchestrator, board: Optional[SignalBoard] = None) -> FastAPI:
    app = FastAPI(title="strikegrid health")

    @app.get("/")
    async def health():
        snap = board.read() if board is not None else None
        return JSONResponse(
            {
                "status": "ALIVE",
                "engine": ENGINE,
                "version": VERSION,
                "strategy": "grid",
                "chain": list(orchestrator.table),
                "signals": [s.model_dump() for s in snap.signals] if snap else [],
                "generation": snap.generation if snap else 0,
                "workers": orchestrator.status(),
            }
        )

    return app
