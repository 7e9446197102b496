import asyncio
from typing import Any, Optional, Set
from ..models.device import Action, DeviceCommand, DeviceKind, DirectLinkResult, DispatchResult
from ..utils.logging import get_logger
from ..utils.exceptions import InvalidCommand
from .communication_service import CommunicationService
from .direct_link import DirectLinkClient

logger = get_logger(__name__)


def parse_command(device: Any, action: Any = None, state: Any = None) -> DeviceCommand:
    """Validate raw control input into a DeviceCommand.

    ``action`` is "ON"/"OFF" (any case). When it is missing a boolean
    ``state`` is accepted instead, the way the web client sends it.
    """
    if not isinstance(device, str):
        raise InvalidCommand(f"Invalid device: {device!r}")
    try:
        kind = DeviceKind(device.strip().lower())
    except ValueError:
        raise InvalidCommand(f"Invalid device: {device!r}")

    if action is None and isinstance(state, bool):
        return DeviceCommand(device=kind, action=Action.ON if state else Action.OFF)

    if not isinstance(action, str):
        raise InvalidCommand(f"Invalid action: {action!r}")
    try:
        act = Action(action.strip().upper())
    except ValueError:
        raise InvalidCommand(f"Invalid action: {action!r}")
    return DeviceCommand(device=kind, action=act)


class CommandDispatcher:
    """Sends one command over both channels.

    The broker publish and the direct call are independent: neither outcome
    changes whether the other is attempted, and neither decides the result
    once the command itself is valid. Unless ``wait_for_device`` is set the
    direct call runs in the background and the caller only waits for the
    publish to be queued.
    """
    def __init__(self, broker: CommunicationService, direct_link: DirectLinkClient,
                 wait_for_device: bool = False):
        self.broker = broker
        self.direct_link = direct_link
        self.wait_for_device = wait_for_device
        self._pending: Set[asyncio.Task] = set()

    async def dispatch(self, device: Any, action: Any = None, state: Optional[bool] = None) -> DispatchResult:
        command = parse_command(device, action, state)

        try:
            broker_queued = self.broker.publish_command(command.device, command.action)
        except Exception as e:
            logger.error(f"Broker publish for {command.device.value} failed: {str(e)}")
            broker_queued = False

        direct_delivered = None
        if self.wait_for_device:
            direct = await self._send_direct(command, broker_queued)
            direct_delivered = direct.delivered
        else:
            task = asyncio.create_task(self._send_direct(command, broker_queued))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return DispatchResult(
            device=command.device,
            action=command.action,
            broker_queued=broker_queued,
            direct_delivered=direct_delivered,
        )

    async def _send_direct(self, command: DeviceCommand, broker_queued: bool) -> DirectLinkResult:
        try:
            direct = await self.direct_link.send_command(command.device, command.action)
        except Exception as e:
            logger.error(f"Direct command for {command.device.value} failed: {str(e)}")
            direct = DirectLinkResult(delivered=False, error=str(e))

        if not direct.delivered:
            logger.warning(
                f"Command {command.device.value}={command.action.value} not confirmed by device "
                f"({direct.error}); broker queued={broker_queued}"
            )
        else:
            logger.info(f"Command {command.device.value}={command.action.value} delivered, broker queued={broker_queued}")
        return direct

    async def wait_pending(self) -> None:
        """Let in-flight background direct calls finish; each is bounded by the device timeout."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
