"""Generation status polling.

A cooperative polling task that follows one PROCESSING generation until it
reaches a terminal status, and reports the generation as failed itself when
the polling budget runs out so an abandoned run is never left PROCESSING.

State machine::

    IDLE -> POLLING -> COMPLETED | FAILED | TIMED_OUT | ERRORED | CANCELLED

The poller is independent of any UI; ``cancel()`` only stops local polling
and never touches server-side execution.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx
import structlog

from headshot.models.generation import GenerationStatus
from headshot.services.exceptions import (
    PollingConnectionError,
    PollingError,
    PollingTimeoutError,
)

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_POLLS = 24
TIMEOUT_REASON = "timeout"


class PollState(str, Enum):
    IDLE = "IDLE"
    POLLING = "POLLING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    ERRORED = "ERRORED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self not in (PollState.IDLE, PollState.POLLING)


@dataclass
class PollResult:
    """Outcome of one polling run."""

    generation_id: int
    state: PollState
    polls: int = 0
    image_url: str | None = None
    error: PollingError | None = None


FinishCallback = Callable[[PollResult], Awaitable[None] | None]


class GenerationStatusPoller:
    """Polls ``GET /api/generation-status`` for a single generation."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: int = DEFAULT_MAX_POLLS,
        on_finish: FinishCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        request_timeout: float = 10.0,
    ):
        """Initialize poller.

        Args:
            base_url: API base URL
            token: Bearer token of the generation owner (required to mark failed)
            poll_interval: Seconds between status queries
            max_polls: Non-terminal answers tolerated before giving up
            on_finish: Called exactly once when a terminal state is reached,
                typically to refresh the caller's view of persisted state
            transport: Optional httpx transport (tests use httpx.MockTransport)
            request_timeout: Per-request timeout in seconds
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if max_polls < 1:
            raise ValueError("max_polls must be at least 1")

        self.base_url = base_url.rstrip("/")
        self.token = token
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.on_finish = on_finish
        self.transport = transport
        self.request_timeout = request_timeout

        self.state = PollState.IDLE
        self._cancelled = asyncio.Event()
        self._finished = False

    def cancel(self) -> None:
        """Stop polling locally; the pending wait is interrupted immediately."""
        self._cancelled.set()

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.request_timeout,
            transport=self.transport,
        )

    async def fetch_status(
        self, generation_id: int, client: httpx.AsyncClient | None = None
    ) -> tuple[GenerationStatus, str | None]:
        """Query the current status of a generation.

        Returns:
            (status, image_url)

        Raises:
            PollingConnectionError: Network failure, non-2xx response or unparsable body
        """
        if client is None:
            async with self._client() as owned_client:
                return await self.fetch_status(generation_id, owned_client)

        try:
            response = await client.get(
                "/api/generation-status", params={"generationId": generation_id}
            )
            response.raise_for_status()
            payload = response.json()
            return GenerationStatus(payload["status"]), payload.get("imageUrl")
        except httpx.HTTPError as e:
            raise PollingConnectionError(f"Status query failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise PollingConnectionError(f"Unexpected status response: {e}") from e

    async def _wait_interval(self) -> bool:
        """Sleep for one interval; return False if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return True
        return False

    async def _mark_timed_out(self, client: httpx.AsyncClient, generation_id: int) -> None:
        try:
            response = await client.post(
                "/api/generation-status",
                json={"generationId": generation_id, "reason": TIMEOUT_REASON},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            # Server may have finished in the meantime (400) or be unreachable
            logger.warning(
                "poller.mark_failed_rejected",
                generation_id=generation_id,
                error_message=str(e),
            )

    async def _finish(self, result: PollResult) -> PollResult:
        self.state = result.state
        if self._finished:
            return result
        self._finished = True

        logger.info(
            "poller.finished",
            generation_id=result.generation_id,
            state=result.state.value,
            polls=result.polls,
        )
        if self.on_finish is not None:
            outcome: Any = self.on_finish(result)
            if inspect.isawaitable(outcome):
                await outcome
        return result

    async def run(self, generation_id: int, known_status: GenerationStatus) -> PollResult:
        """Follow a generation until it completes, fails or the budget runs out.

        Args:
            generation_id: Generation to follow
            known_status: Status the caller already has for the generation;
                polling starts only when it is PROCESSING

        Returns:
            PollResult with the terminal state (or IDLE when polling never started)
        """
        if known_status != GenerationStatus.PROCESSING:
            return PollResult(generation_id=generation_id, state=PollState.IDLE)
        if self.state != PollState.IDLE:
            raise RuntimeError("Poller instances are single-use")

        self.state = PollState.POLLING
        polls = 0

        async with self._client() as client:
            while True:
                if not await self._wait_interval():
                    return await self._finish(
                        PollResult(generation_id, PollState.CANCELLED, polls)
                    )

                try:
                    status, image_url = await self.fetch_status(generation_id, client)
                except PollingConnectionError as e:
                    return await self._finish(
                        PollResult(generation_id, PollState.ERRORED, polls, error=e)
                    )
                polls += 1

                if self._cancelled.is_set():
                    return await self._finish(
                        PollResult(generation_id, PollState.CANCELLED, polls)
                    )

                if status == GenerationStatus.COMPLETED:
                    return await self._finish(
                        PollResult(generation_id, PollState.COMPLETED, polls, image_url)
                    )
                if status == GenerationStatus.FAILED:
                    return await self._finish(PollResult(generation_id, PollState.FAILED, polls))
                if status != GenerationStatus.PROCESSING:
                    # Left PROCESSING without finishing; nothing to wait for or time out
                    error = PollingError(
                        f"Generation {generation_id} moved to {status.value} while polling"
                    )
                    return await self._finish(
                        PollResult(generation_id, PollState.ERRORED, polls, error=error)
                    )

                if polls >= self.max_polls:
                    await self._mark_timed_out(client, generation_id)
                    error = PollingTimeoutError(
                        f"Generation {generation_id} still {status.value} after {polls} polls"
                    )
                    return await self._finish(
                        PollResult(generation_id, PollState.TIMED_OUT, polls, error=error)
                    )

                logger.debug(
                    "poller.still_processing",
                    generation_id=generation_id,
                    status=status.value,
                    polls=polls,
                )
