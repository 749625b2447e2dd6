"""Status polling protocol tests (httpx.MockTransport, no server)."""

import asyncio
import json

import httpx
import pytest

from headshot.client.poller import GenerationStatusPoller, PollState
from headshot.models.generation import GenerationStatus
from headshot.services.exceptions import PollingConnectionError, PollingError, PollingTimeoutError

BASE_URL = "http://api.test"
HOSTED_URL = "https://res.cloudinary.com/demo/image/upload/headshots/generation-5.png"


class FakeStatusServer:
    """Serves a scripted sequence of statuses and records mark-failed calls."""

    def __init__(self, statuses, image_url=None, fail_get_at=None):
        self.statuses = list(statuses)
        self.image_url = image_url
        self.fail_get_at = fail_get_at
        self.gets = 0
        self.mark_failed_bodies = []
        self.auth_headers = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.gets += 1
            if self.fail_get_at == self.gets:
                raise httpx.ConnectError("connection refused", request=request)
            status = self.statuses[min(self.gets, len(self.statuses)) - 1]
            image_url = self.image_url if status == "COMPLETED" else None
            return httpx.Response(
                200,
                json={
                    "id": int(request.url.params["generationId"]),
                    "status": status,
                    "imageUrl": image_url,
                },
            )

        self.mark_failed_bodies.append(json.loads(request.content))
        self.auth_headers.append(request.headers.get("authorization"))
        return httpx.Response(200, json={"success": True, "message": "Generation marked as failed"})


def make_poller(server: FakeStatusServer, **kwargs) -> GenerationStatusPoller:
    kwargs.setdefault("poll_interval", 0.001)
    kwargs.setdefault("max_polls", 24)
    return GenerationStatusPoller(
        BASE_URL, token="owner-token", transport=httpx.MockTransport(server.handler), **kwargs
    )


@pytest.mark.asyncio
async def test_max_polls_issues_exactly_one_mark_failed():
    server = FakeStatusServer(["PROCESSING"])
    finished = []
    poller = make_poller(server, max_polls=24, on_finish=finished.append)

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.TIMED_OUT
    assert isinstance(result.error, PollingTimeoutError)
    assert result.polls == 24
    assert server.gets == 24
    assert server.mark_failed_bodies == [{"generationId": 5, "reason": "timeout"}]
    assert server.auth_headers == ["Bearer owner-token"]
    assert finished == [result]
    assert poller.state == PollState.TIMED_OUT


@pytest.mark.asyncio
async def test_stops_when_completed():
    server = FakeStatusServer(["PROCESSING", "PROCESSING", "COMPLETED"], image_url=HOSTED_URL)
    finished = []
    poller = make_poller(server, on_finish=finished.append)

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.COMPLETED
    assert result.image_url == HOSTED_URL
    assert server.gets == 3
    assert server.mark_failed_bodies == []
    assert len(finished) == 1


@pytest.mark.asyncio
async def test_stops_when_failed_server_side():
    server = FakeStatusServer(["PROCESSING", "FAILED"])
    poller = make_poller(server)

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.FAILED
    assert server.gets == 2
    assert server.mark_failed_bodies == []


@pytest.mark.asyncio
async def test_connection_error_stops_without_mutation():
    server = FakeStatusServer(["PROCESSING"], fail_get_at=2)
    finished = []
    poller = make_poller(server, on_finish=finished.append)

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.ERRORED
    assert isinstance(result.error, PollingConnectionError)
    assert server.gets == 2
    assert server.mark_failed_bodies == []
    assert finished == [result]


@pytest.mark.asyncio
async def test_unparsable_response_is_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway error</html>")

    poller = GenerationStatusPoller(
        BASE_URL, poll_interval=0.001, transport=httpx.MockTransport(handler)
    )

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.ERRORED


@pytest.mark.asyncio
async def test_http_error_status_is_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "boom"})

    poller = GenerationStatusPoller(
        BASE_URL, poll_interval=0.001, transport=httpx.MockTransport(handler)
    )

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.ERRORED


@pytest.mark.parametrize(
    "known_status",
    [GenerationStatus.PENDING_PAYMENT, GenerationStatus.COMPLETED, GenerationStatus.FAILED],
)
@pytest.mark.asyncio
async def test_does_not_poll_unless_processing(known_status):
    server = FakeStatusServer(["PROCESSING"])
    finished = []
    poller = make_poller(server, on_finish=finished.append)

    result = await poller.run(5, known_status)

    assert result.state == PollState.IDLE
    assert poller.state == PollState.IDLE
    assert server.gets == 0
    assert finished == []


@pytest.mark.asyncio
async def test_cancel_interrupts_pending_wait():
    server = FakeStatusServer(["PROCESSING"])
    finished = []
    poller = make_poller(server, poll_interval=30, on_finish=finished.append)

    task = asyncio.create_task(poller.run(5, GenerationStatus.PROCESSING))
    await asyncio.sleep(0.01)
    poller.cancel()
    result = await asyncio.wait_for(task, timeout=1)

    assert result.state == PollState.CANCELLED
    assert server.gets == 0
    assert server.mark_failed_bodies == []
    assert finished == [result]


@pytest.mark.asyncio
async def test_async_on_finish_is_awaited():
    server = FakeStatusServer(["COMPLETED"], image_url=HOSTED_URL)
    refreshed = []

    async def refresh(result):
        refreshed.append(result.state)

    poller = make_poller(server, on_finish=refresh)

    await poller.run(5, GenerationStatus.PROCESSING)

    assert refreshed == [PollState.COMPLETED]


def test_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        GenerationStatusPoller(BASE_URL, poll_interval=0)
    with pytest.raises(ValueError):
        GenerationStatusPoller(BASE_URL, max_polls=0)


@pytest.mark.asyncio
async def test_status_outside_processing_stops_without_mark_failed():
    server = FakeStatusServer(["PROCESSING", "PENDING_PAYMENT"])
    finished = []
    poller = make_poller(server, max_polls=5, on_finish=finished.append)

    result = await poller.run(5, GenerationStatus.PROCESSING)

    assert result.state == PollState.ERRORED
    assert type(result.error) is PollingError
    assert server.gets == 2
    assert server.mark_failed_bodies == []
    assert finished == [result]
