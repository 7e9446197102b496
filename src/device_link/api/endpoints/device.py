from fastapi import APIRouter, HTTPException, Response
from fastapi.responses import JSONResponse
from typing import Dict, Any
from ...models.device import ControlRequest, DeviceStatus
from ...utils.exceptions import DirectLinkUnreachable, InvalidCommand
from ...utils.logging import get_logger
from ..dependencies import (
    CommunicationDependency,
    DirectLinkDependency,
    DispatcherDependency,
    ResolverDependency,
    StatusCacheDependency,
)

logger = get_logger(__name__)

device_router = APIRouter()


'''
# Switch the light on
response = await client.post("/api/device/control", json={"device": "light", "action": "ON"})

# Current status, X-Status-Source tells live from cached
status = await client.get("/api/device/status")
'''

@device_router.post("/device/control")
async def control_device(request: ControlRequest, dispatcher: DispatcherDependency) -> Dict[str, Any]:
    try:
        result = await dispatcher.dispatch(request.device, request.action, request.state)
    except InvalidCommand as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "message": "Command sent successfully",
        "device": result.device.value,
        "action": result.action.value,
        "broker_queued": result.broker_queued,
        "direct_delivered": result.direct_delivered,
    }


@device_router.get("/device/status", response_model=DeviceStatus)
async def get_device_status(response: Response, resolver: ResolverDependency):
    try:
        resolution = await resolver.resolve()
    except DirectLinkUnreachable as e:
        logger.info(f"Device status unavailable: {e}")
        return JSONResponse(
            status_code=503,
            content={"message": "Device is unreachable", "error": "unreachable"},
        )

    response.headers["X-Status-Source"] = resolution.source.value
    return resolution.status


@device_router.get("/device/links")
async def get_link_diagnostics(
    broker: CommunicationDependency,
    direct_link: DirectLinkDependency,
    resolver: ResolverDependency,
    status_cache: StatusCacheDependency,
) -> Dict[str, Any]:
    return {
        "broker": {
            "state": broker.state.value,
            "status_topic": broker.topics.status,
        },
        "direct": {
            "address": direct_link.config.address,
            "healthy": await direct_link.check_health(),
            "reachability": resolver.reachability.value,
            "last_error": resolver.last_error,
        },
        "cache": status_cache.get_stats(),
        "fallback_policy": resolver.policy.value,
    }
