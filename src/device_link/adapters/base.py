# Abstract base class for the transport adapters
# mqtt.py talks to the broker, rest.py talks to the device directly


from abc import ABC, abstractmethod


class CommunicationAdapter(ABC):
    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass
