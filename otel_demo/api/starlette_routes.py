"""Plain Starlette routes exposing the same surface as the FastAPI router."""

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from otel_demo.api.responses import get_demo_service, read_json_body, to_response
from otel_demo.observability.metrics import metrics_endpoint


async def root(request: Request) -> Response:
    return to_response(await get_demo_service(request).root())


async def data_echo(request: Request) -> Response:
    payload = await read_json_body(request)
    return to_response(await get_demo_service(request).data_echo(payload))


async def delayed(request: Request) -> Response:
    return to_response(await get_demo_service(request).delayed())


async def log_emission(request: Request) -> Response:
    payload = await read_json_body(request)
    return to_response(await get_demo_service(request).log_emission(payload))


async def outbound_fetch(request: Request) -> Response:
    return to_response(await get_demo_service(request).outbound_fetch())


async def health(_: Request) -> Response:
    return JSONResponse({"status": "ok"})


def build_routes(*, metrics: bool = False) -> list[Route]:
    routes = [
        Route("/", root, methods=["GET"]),
        Route("/data", data_echo, methods=["POST"]),
        Route("/delay", delayed, methods=["GET"]),
        Route("/log", log_emission, methods=["POST"]),
        Route("/fetch", outbound_fetch, methods=["GET"]),
        Route("/health", health, methods=["GET"]),
    ]
    if metrics:
        routes.append(Route("/metrics", metrics_endpoint, methods=["GET"]))
    return routes
