# agent/agent.py
from __future__ import annotations

import signal
import time
from pathlib import Path

from matrixci.model import FAILURE
from matrixci.ui.console import get_console

from .api_client import APIClient, APIError
from .executor import execute_lease
from .models import Lease


class Agent:
    """Runner process for one OS label: polls for cells and executes them."""

    def __init__(self, api_url: str, agent_id: str, os_id: str, poll_interval: int = 5):
        """
        Args:
            api_url: Base URL of the API
            agent_id: Unique identifier for this agent instance
            os_id: Runner label this agent serves (e.g. ubuntu-latest)
            poll_interval: Seconds to wait between polls when no cells are queued
        """
        self.api_client = APIClient(api_url, agent_id)
        self.os_id = os_id
        self.poll_interval = poll_interval
        self.work_dir = Path(".matrixci/agent_work")
        self.running = True

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        get_console().print_info(f"\nReceived signal {signum}, shutting down gracefully...")
        self.running = False

    def run(self) -> None:
        """Run the agent loop."""
        console = get_console()
        console.print_agent_started(
            agent_id=self.api_client.agent_id,
            os_id=self.os_id,
            api=self.api_client.base_url,
            poll_interval=self.poll_interval,
        )

        while self.running:
            try:
                lease = self.api_client.claim_lease(self.os_id)
                if lease:
                    console.print_lease_acquired(lease.os, lease.run_id, lease.cell_id)
                    self._execute_lease(lease)
                else:
                    time.sleep(self.poll_interval)
            except APIError as e:
                console.print_error("API error", str(e), suggestion="Check API connectivity and retry.")
                time.sleep(self.poll_interval)

        console.print_info("Agent stopped.")

    def _execute_lease(self, lease: Lease) -> None:
        console = get_console()
        start_time = time.time()

        result = execute_lease(lease, self.work_dir)
        try:
            self.api_client.complete_lease(lease.cell_id, result.to_dict())
        except APIError as e:
            console.print_error(
                "Failed to send completion",
                f"Could not report cell {lease.cell_id}: {e}",
            )

        console.print_execution_complete(status=result.status, duration=time.time() - start_time)
        if result.status == FAILURE and result.error:
            console.print_info(f"Error: {result.error}")
        if console.debug and result.logs:
            console.print_info(f"\nLogs for {lease.os}:")
            console.print_info("=" * 60)
            console.print_info(result.logs)
            console.print_info("=" * 60)


def run_agent(api_url: str, agent_id: str, os_id: str, poll_interval: int = 5) -> None:
    """Run the matrixci agent loop until interrupted."""
    Agent(api_url, agent_id, os_id, poll_interval).run()
