# agent/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from matrixci.model import CellResult, Pipeline


@dataclass
class Lease:
    """A leased matrix cell from the API (ClaimedCell response)."""
    cell_id: str
    run_id: str
    os: str
    payload_json: Dict[str, Any]  # repo_url, ref and the pipeline definition
    lease_expires_at: str  # ISO format timestamp

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Lease:
        """Create Lease from API ClaimedCell response dictionary."""
        return cls(
            cell_id=data["cell_id"],
            run_id=data["run_id"],
            os=data["os"],
            payload_json=data["payload_json"],
            lease_expires_at=data["lease_expires_at"],
        )

    @property
    def repo_url(self) -> str:
        return self.payload_json.get("repo_url", "")

    @property
    def ref(self) -> str:
        return self.payload_json.get("ref") or "HEAD"

    @property
    def pipeline(self) -> Pipeline:
        return Pipeline.from_dict(self.payload_json["pipeline"])


@dataclass
class ExecutionResult:
    """Result of executing a leased cell."""
    status: str  # "success" | "failure"
    logs: str
    cell: Optional[CellResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the body of /leases/{cell_id}/complete (minus agent_id)."""
        return {
            "status": self.status,
            "logs": self.logs,
            "steps": [s.to_dict() for s in self.cell.steps] if self.cell else [],
            "error": self.error,
        }
