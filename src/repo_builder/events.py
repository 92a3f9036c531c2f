# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""JSONL lifecycle events for a build run."""

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class RunEventLog:
    """Appends run.* and job.* events, all tagged with one run id."""

    def __init__(self, log_path: Path, run_id: Optional[str] = None):
        self.log_path = Path(log_path)
        self.run_id = run_id or str(uuid.uuid4())
        self._lock = threading.Lock()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_event(
        self,
        event_type: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Append one event line."""
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "run_id": self.run_id,
            "status": status,
        }
        if payload:
            event["payload"] = payload
        if error_message:
            event["error_message"] = error_message

        line = json.dumps(event, default=str) + "\n"
        with self._lock:
            with open(self.log_path, "a") as f:
                f.write(line)
