# src/device_link/api/dependencies.py
from fastapi import Request
from typing import Annotated
from fastapi import Depends
from ..core.communication_service import CommunicationService
from ..core.direct_link import DirectLinkClient
from ..core.dispatcher import CommandDispatcher
from ..core.resolver import StatusResolver
from ..storage.cache import StatusCache

async def get_dispatcher(request: Request) -> CommandDispatcher:
    return request.app.state.components.dispatcher

async def get_resolver(request: Request) -> StatusResolver:
    return request.app.state.components.resolver

async def get_status_cache(request: Request) -> StatusCache:
    return request.app.state.components.status_cache

async def get_communication_service(request: Request) -> CommunicationService:
    return request.app.state.components.communication_service

async def get_direct_link(request: Request) -> DirectLinkClient:
    return request.app.state.components.direct_link

# Type definitions for dependencies
DispatcherDependency = Annotated[CommandDispatcher, Depends(get_dispatcher)]
ResolverDependency = Annotated[StatusResolver, Depends(get_resolver)]
StatusCacheDependency = Annotated[StatusCache, Depends(get_status_cache)]
CommunicationDependency = Annotated[CommunicationService, Depends(get_communication_service)]
DirectLinkDependency = Annotated[DirectLinkClient, Depends(get_direct_link)]
