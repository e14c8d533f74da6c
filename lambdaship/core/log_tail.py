"""Follow a function's CloudWatch log group."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterator

import boto3
from botocore.exceptions import ClientError

from lambdaship.core.credentials import Credentials

logger = logging.getLogger(__name__)

LOOKBACK_MS = 5 * 60 * 1000


def log_group_for(function_name: str) -> str:
    return f"/aws/lambda/{function_name}"


def now_ms() -> int:
    return int(time.time() * 1000)


class LogTailer:
    """Polls FilterLogEvents and yields each new message once."""

    def __init__(
        self,
        credentials: Credentials,
        function_name: str,
        *,
        client: Any = None,
        poll_interval: float = 3.0,
        since_ms: int | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.function_name = function_name
        self.client = client if client is not None else boto3.client(
            "logs",
            region_name=credentials.region,
            aws_access_key_id=credentials.access_key,
            aws_secret_access_key=credentials.secret_key,
            aws_session_token=credentials.session_token,
        )
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        # Events older than this are history, not output of the new deploy.
        self.since_ms = since_ms if since_ms is not None else clock()
        # eventId -> timestamp of events already yielded within the lookback window.
        self._seen: dict[str, int] = {}

    def poll(self) -> list[str]:
        """Fetch one round of events (all pages)."""
        messages: list[str] = []
        window_start = max(self._clock() - LOOKBACK_MS, 0)
        self._forget_before(window_start)
        params: dict[str, Any] = {
            "logGroupName": log_group_for(self.function_name),
            "startTime": window_start,
            "limit": 10000,
        }
        while True:
            response = self.client.filter_log_events(**params)
            for event in response.get("events", []):
                event_id = event.get("eventId")
                if event_id is None or event_id in self._seen:
                    continue
                timestamp = int(event.get("timestamp", 0))
                if timestamp < self.since_ms:
                    continue
                self._seen[event_id] = timestamp
                messages.append(str(event.get("message", "")))
            next_token = response.get("nextToken")
            if not next_token:
                return messages
            params["nextToken"] = next_token

    def _forget_before(self, window_start: int) -> None:
        # The query never returns events older than its startTime again.
        for event_id in [key for key, ts in self._seen.items() if ts < window_start]:
            del self._seen[event_id]

    def follow(self, max_polls: int | None = None) -> Iterator[str]:
        polls = 0
        while max_polls is None or polls < max_polls:
            try:
                yield from self.poll()
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                    raise
                logger.debug("Log group %s does not exist yet", log_group_for(self.function_name))
            polls += 1
            if max_polls is None or polls < max_polls:
                self._sleep(self.poll_interval)
