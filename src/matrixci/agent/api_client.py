# agent/api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Dict, Optional
from urllib.parse import urljoin

from .models import Lease


class APIError(Exception):
    """Raised when API requests fail."""
    pass


class APIClient:
    """HTTP client for the matrixci control plane."""

    def __init__(self, base_url: str, agent_id: str = "", timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id
        self.timeout = timeout

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> Dict[str, Any]:
        """
        Make a JSON request to the API.

        Returns the parsed body, or {} for an empty body (e.g. 204).

        Raises:
            APIError: If the request fails
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        req_data = json.dumps(data).encode("utf-8") if data is not None else None
        req = urllib.request.Request(
            url,
            data=req_data,
            headers={"Content-Type": "application/json"},
            method=method,
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
                return json.loads(body) if body else {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise APIError(f"API request failed: {e.code} {e.reason}. {error_body}".strip())
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    # -------------------- agent side --------------------

    def claim_lease(self, os_id: str) -> Optional[Lease]:
        """Claim the next queued cell for `os_id`; None when the queue is empty."""
        response = self._request(
            "POST",
            "/leases/claim",
            data={"agent_id": self.agent_id, "os": os_id},
        )
        if not response:
            return None
        try:
            return Lease.from_dict(response)
        except (KeyError, TypeError) as e:
            raise APIError(f"Malformed lease response: {e}")

    def complete_lease(self, cell_id: str, body: Dict[str, Any]) -> None:
        """Report the final cell result."""
        status = body.get("status")
        if status not in ("success", "failure"):
            status = "failure"
        self._request(
            "POST",
            f"/leases/{cell_id}/complete",
            data={**body, "agent_id": self.agent_id, "status": status},
        )

    # -------------------- client side --------------------

    def submit_event(self, repo_url: str, event: Dict[str, Any], pipeline: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/events",
            data={"repo_url": repo_url, "event": event, "pipeline": pipeline},
        )

    def get_run(self, run_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/runs/{run_id}")
