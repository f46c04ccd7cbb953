import asyncio
import random

import httpx
import pytest

from otel_demo.main import create_app, create_starlette_app


@pytest.mark.asyncio
@pytest.mark.parametrize("framework", ["fastapi", "starlette"])
async def test_simultaneous_root_requests_leave_no_in_flight_count(
    framework, settings, harness, make_service
) -> None:
    # Real timers with a seeded generator: roughly one request in ten fails.
    fast_settings = settings.model_copy(update={"root_max_delay_ms": 20})
    service = make_service(
        framework=framework,
        rng=random.Random(1234),
        sleep=asyncio.sleep,
        service_settings=fast_settings,
    )
    factory = create_app if framework == "fastapi" else create_starlette_app
    app = factory(fast_settings, telemetry=harness.telemetry, service=service)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        responses = await asyncio.gather(*(client.get("/") for _ in range(100)))

    statuses = {response.status_code for response in responses}
    assert statuses <= {200, 400}
    assert harness.value(f"{framework}.server.requests") == 100
    assert harness.value(f"{framework}.server.active_requests") == 0
    assert len(harness.finished_spans()) == 100


@pytest.mark.asyncio
async def test_gauge_reflects_requests_in_flight(settings, harness, make_service) -> None:
    release = asyncio.Event()

    async def gated_sleep(_: float) -> None:
        await release.wait()

    service = make_service(rng=random.Random(7), sleep=gated_sleep)
    tasks = [asyncio.create_task(service.root()) for _ in range(5)]
    await asyncio.sleep(0)

    assert harness.value("fastapi.server.active_requests") == 5

    release.set()
    results = await asyncio.gather(*tasks)

    assert {result.status_code for result in results} <= {200, 400}
    assert harness.value("fastapi.server.active_requests") == 0
