from __future__ import annotations
import os

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ["REDIS_URL"]
QUEUE_PREFIX = os.environ.get("QUEUE_PREFIX", "matrixci:queue")
LEASE_SECONDS = int(os.environ.get("LEASE_SECONDS", "3600"))
# 0 = don't block when an OS queue is empty
CLAIM_TIMEOUT_SECONDS = int(os.environ.get("CLAIM_TIMEOUT_SECONDS", "5"))
