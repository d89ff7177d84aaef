from __future__ import annotations

import redis.asyncio as redis
from .settings import REDIS_URL, QUEUE_PREFIX, LEASE_SECONDS

r = redis.from_url(REDIS_URL, decode_responses=True)

def queue_key(os_id: str) -> str:
    # one queue per runner label so agents only see their own cells
    return f"{QUEUE_PREFIX}:{os_id}"

def lease_lock_key(cell_id: str) -> str:
    return f"matrixci:lease_lock:{cell_id}"

async def enqueue_cell(os_id: str, cell_id: str) -> None:
    await r.rpush(queue_key(os_id), cell_id)  # FIFO: push right

async def dequeue_cell(os_id: str, timeout_s: int = 5) -> str | None:
    if timeout_s <= 0:
        return await r.lpop(queue_key(os_id))
    item = await r.blpop([queue_key(os_id)], timeout=timeout_s)  # FIFO: pop left
    if not item:
        return None
    _q, cell_id = item
    return cell_id

async def requeue_cell(os_id: str, cell_id: str) -> None:
    await r.lpush(queue_key(os_id), cell_id)

async def acquire_lease_lock(cell_id: str, agent_id: str) -> bool:
    return bool(await r.set(lease_lock_key(cell_id), agent_id, nx=True, ex=LEASE_SECONDS))

async def release_lease_lock(cell_id: str) -> None:
    await r.delete(lease_lock_key(cell_id))
