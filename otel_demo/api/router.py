"""FastAPI routes for the instrumented endpoints."""

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from otel_demo.api.responses import get_demo_service, read_json_body, to_response
from otel_demo.services.demo import DemoService

api_router = APIRouter(tags=["demo"])


@api_router.get("/")
async def root(service: DemoService = Depends(get_demo_service)) -> Response:
    return to_response(await service.root())


@api_router.post("/data")
async def data_echo(request: Request, service: DemoService = Depends(get_demo_service)) -> Response:
    return to_response(await service.data_echo(await read_json_body(request)))


@api_router.get("/delay")
async def delayed(service: DemoService = Depends(get_demo_service)) -> Response:
    return to_response(await service.delayed())


@api_router.post("/log")
async def log_emission(request: Request, service: DemoService = Depends(get_demo_service)) -> Response:
    return to_response(await service.log_emission(await read_json_body(request)))


@api_router.get("/fetch")
async def outbound_fetch(service: DemoService = Depends(get_demo_service)) -> Response:
    return to_response(await service.outbound_fetch())
