from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

import sqlalchemy as sa
from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, Field

from matrixci.model import (
    FAILURE,
    PENDING,
    RUNNING,
    SKIPPED,
    SUCCESS,
    Pipeline,
    StepResult,
    TriggerEvent,
    aggregate_status,
)
from matrixci.trigger import should_trigger

from . import redisq
from .db import SessionLocal, engine
from .models import Base, Run, Cell, Lease
from .settings import LEASE_SECONDS, CLAIM_TIMEOUT_SECONDS

# -------------------- Schemas --------------------

class EventIn(BaseModel):
    kind: str
    branch: str
    ref: str | None = None
    sha: str | None = None

class CreateEventRequest(BaseModel):
    repo_url: str
    event: EventIn
    pipeline: dict[str, Any]

class CreateEventResponse(BaseModel):
    triggered: bool
    run_id: str | None = None
    cell_ids: dict[str, str] = Field(default_factory=dict)

class ClaimRequest(BaseModel):
    agent_id: str
    os: str

class ClaimedCell(BaseModel):
    cell_id: str
    run_id: str
    os: str
    payload_json: dict[str, Any]
    lease_expires_at: str

class StepIn(BaseModel):
    name: str
    run: str = ""
    outcome: str
    exit_code: int | None = None
    output: str = ""
    duration: float = 0.0

class CompleteRequest(BaseModel):
    agent_id: str
    status: str  # success|failure
    steps: list[StepIn] = Field(default_factory=list)
    logs: str | None = None
    error: str | None = None

class CellResponse(BaseModel):
    id: str
    run_id: str
    os: str
    status: str
    steps: list[dict[str, Any]]
    error: str | None
    logs: str | None

class RunResponse(BaseModel):
    id: str
    repo: str
    ref: str | None
    event_kind: str
    branch: str
    pipeline: str
    status: str
    created_at: datetime
    cells: list[CellResponse]

# -------------------- Lifespan --------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

app = FastAPI(title="matrixci control plane", lifespan=lifespan)

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _as_utc(dt: datetime) -> datetime:
    # some backends (sqlite) hand back naive timestamps
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _parse_id(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"{what} not found")

def _cell_response(cell: Cell) -> CellResponse:
    return CellResponse(
        id=str(cell.id),
        run_id=str(cell.run_id),
        os=cell.os,
        status=cell.status,
        steps=list(cell.steps_json or []),
        error=cell.error,
        logs=cell.logs,
    )

# -------------------- Endpoints --------------------

@app.post("/events", response_model=CreateEventResponse)
async def create_event(req: CreateEventRequest):
    try:
        event = TriggerEvent.from_dict(req.event.model_dump())
        pipeline = Pipeline.from_dict(req.pipeline)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid event or pipeline: {e}")

    if not should_trigger(event, pipeline):
        return CreateEventResponse(triggered=False)

    payload = {
        "repo_url": req.repo_url,
        # pin every cell to the same commit when the event names one
        "ref": event.sha or event.ref or event.branch,
        "pipeline": pipeline.to_dict(),
    }
    pending_steps = [StepResult(name=s.name, run=s.run).to_dict() for s in pipeline.steps]
    cell_ids: dict[str, str] = {}

    async with SessionLocal() as s:
        async with s.begin():
            run = Run(
                repo=req.repo_url,
                ref=payload["ref"],
                event_kind=event.kind,
                branch=event.branch,
                pipeline_name=pipeline.name,
                status=PENDING,
            )
            s.add(run)
            await s.flush()

            for pos, os_id in enumerate(pipeline.os_matrix):
                cell = Cell(
                    run_id=run.id,
                    position=pos,
                    os=os_id,
                    status=PENDING,
                    payload_json=payload,
                    steps_json=pending_steps,
                )
                s.add(cell)
                await s.flush()
                cell_ids[os_id] = str(cell.id)

            run_id = str(run.id)

    # push to Redis after DB commit
    for os_id, cid in cell_ids.items():
        await redisq.enqueue_cell(os_id, cid)

    return CreateEventResponse(triggered=True, run_id=run_id, cell_ids=cell_ids)

@app.post("/leases/claim", response_model=ClaimedCell)
async def claim(req: ClaimRequest):
    cell_id = await redisq.dequeue_cell(req.os, timeout_s=CLAIM_TIMEOUT_SECONDS)
    if not cell_id:
        return Response(status_code=204)

    # Lock in Redis to reduce duplicate leasing during retries
    if not await redisq.acquire_lease_lock(cell_id, req.agent_id):
        return await claim(req)  # try the next one

    expires_at = now_utc() + timedelta(seconds=LEASE_SECONDS)

    async with SessionLocal() as s:
        async with s.begin():
            cell = await s.get(Cell, uuid.UUID(cell_id))
            if not cell:
                await redisq.release_lease_lock(cell_id)
                raise HTTPException(status_code=404, detail="Cell not found")

            if cell.status in (SUCCESS, FAILURE):
                await redisq.release_lease_lock(cell_id)
                raise HTTPException(status_code=409, detail=f"Cell already {cell.status}")

            lease = await s.get(Lease, cell.id)
            if lease and _as_utc(lease.expires_at) > now_utc():
                await redisq.release_lease_lock(cell_id)
                await redisq.requeue_cell(cell.os, cell_id)
                return Response(status_code=204)

            if lease:
                lease.agent_id = req.agent_id
                lease.leased_at = now_utc()
                lease.expires_at = expires_at
            else:
                s.add(Lease(cell_id=cell.id, agent_id=req.agent_id, leased_at=now_utc(), expires_at=expires_at))

            cell.status = RUNNING

            run = await s.get(Run, cell.run_id)
            if run and run.status == PENDING:
                run.status = RUNNING

            return ClaimedCell(
                cell_id=cell_id,
                run_id=str(cell.run_id),
                os=cell.os,
                payload_json=cell.payload_json,
                lease_expires_at=expires_at.isoformat(),
            )

@app.post("/leases/{cell_id}/complete")
async def complete(cell_id: str, req: CompleteRequest):
    if req.status not in (SUCCESS, FAILURE):
        raise HTTPException(status_code=400, detail="status must be success|failure")
    cid = _parse_id(cell_id, "Cell")

    async with SessionLocal() as s:
        async with s.begin():
            cell = await s.get(Cell, cid)
            if not cell:
                raise HTTPException(status_code=404, detail="Cell not found")

            lease = await s.get(Lease, cid)
            if not lease:
                raise HTTPException(status_code=409, detail="No lease for cell")
            if lease.agent_id != req.agent_id:
                raise HTTPException(status_code=403, detail="Lease owned by different agent")

            steps = [st.model_dump() for st in req.steps]
            if not steps:
                # agent failed before any step ran
                steps = [
                    {**st, "outcome": SKIPPED} if st.get("outcome") == PENDING else st
                    for st in (cell.steps_json or [])
                ]

            cell.steps_json = steps
            cell.logs = req.logs or None
            cell.error = req.error
            cell.status = req.status
            await s.delete(lease)
            await s.flush()

            run = await s.get(Run, cell.run_id)
            if run:
                q = sa.select(Cell.status).where(Cell.run_id == cell.run_id)
                statuses = (await s.execute(q)).scalars().all()
                run.status = aggregate_status(statuses)

    await redisq.release_lease_lock(cell_id)
    return {"ok": True}

@app.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str):
    """Run status with per-cell, per-step detail."""
    rid = _parse_id(run_id, "Run")
    async with SessionLocal() as s:
        run = await s.get(Run, rid)
        if not run:
            raise HTTPException(status_code=404, detail="Run not found")

        q = sa.select(Cell).where(Cell.run_id == rid).order_by(Cell.position)
        cells = (await s.execute(q)).scalars().all()

        return RunResponse(
            id=str(run.id),
            repo=run.repo,
            ref=run.ref,
            event_kind=run.event_kind,
            branch=run.branch,
            pipeline=run.pipeline_name,
            status=run.status,
            created_at=run.created_at,
            cells=[_cell_response(c) for c in cells],
        )

@app.get("/cells/{cell_id}", response_model=CellResponse)
async def get_cell(cell_id: str):
    """Cell details including step results and logs."""
    async with SessionLocal() as s:
        cell = await s.get(Cell, _parse_id(cell_id, "Cell"))
        if not cell:
            raise HTTPException(status_code=404, detail="Cell not found")
        return _cell_response(cell)
