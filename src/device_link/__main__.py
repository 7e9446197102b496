# src/device_link/__main__.py
import asyncio
import os
import signal
import sys
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from fastapi import FastAPI
from hypercorn.asyncio import serve
from hypercorn.config import Config as HyperConfig
from pydantic import ValidationError
import traceback

from device_link.core.communication_service import CommunicationService
from device_link.core.direct_link import DirectLinkClient
from device_link.core.dispatcher import CommandDispatcher
from device_link.core.resolver import StatusResolver
from device_link.storage.cache import StatusCache
from device_link.api.endpoints.device import device_router
from device_link.utils.logging import setup_logging, get_logger
from device_link.utils.exceptions import CommunicationError, ConfigurationError, InitializationError

DEFAULT_CONFIG_PATH = "src/config/default.yml"

class AppState:
    """Holds application state and components"""
    def __init__(self):
        self.status_cache: Optional[StatusCache] = None
        self.communication_service: Optional[CommunicationService] = None
        self.direct_link: Optional[DirectLinkClient] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self.resolver: Optional[StatusResolver] = None

class ConfigManager:
    """Manages configuration loading and validation"""

    REQUIRED_SECTIONS = ['api', 'logging', 'broker', 'device', 'status']

    @staticmethod
    def load_config(config_path: str) -> Dict[str, Any]:
        """Load and validate configuration from YAML file"""
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError:
            raise ConfigurationError(f"Error parsing configuration file: {traceback.format_exc()}")
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not isinstance(config, dict):
            raise ConfigurationError("Configuration file is empty or incorrectly formatted")

        # Validate required configuration sections
        missing_sections = [section for section in ConfigManager.REQUIRED_SECTIONS if section not in config]
        if missing_sections:
            raise ConfigurationError(f"Missing required configuration sections: {', '.join(missing_sections)}")

        return config

class APIServer:
    """Handles API server initialization and management"""

    def __init__(self, config: Dict[str, Any], shutdown_event: asyncio.Event, app_state: AppState):
        self.config = config
        self.shutdown_event = shutdown_event
        self.logger = get_logger("API Server")
        self.app: Optional[FastAPI] = None
        self.app_state = app_state

    def initialize(self) -> FastAPI:
        """Initialize FastAPI application with routes"""
        self.app = FastAPI(
            title="Device Link API",
            description="Light and fan control over MQTT and the device's direct link",
            version="1.0.0"
        )

        # Store app state for dependency injection
        self.app.state.components = self.app_state

        self.app.include_router(device_router, prefix=self.config['api'].get('prefix', '/api'))

        return self.app

    async def start(self):
        """Start the API server"""
        if not self.app:
            self.initialize()

        hypercorn_config = HyperConfig()
        host = self.config['api']['host']
        port = self.config['api']['port']
        hypercorn_config.bind = [f"{host}:{port}"]

        async def shutdown_trigger():
            await self.shutdown_event.wait()

        self.logger.info(f"Starting API server on {host}:{port}")
        await serve(self.app, hypercorn_config, shutdown_trigger=shutdown_trigger)

class DeviceLinkApp:
    """Main application class"""

    def __init__(self, config_path: str):
        self.logger = get_logger("Main App")
        self.config = ConfigManager.load_config(config_path)
        setup_logging(self.config.get('logging', {}))

        self.shutdown_event = asyncio.Event()
        self.app_state = AppState()
        self.api_server = APIServer(self.config, self.shutdown_event, self.app_state)
        self._stopping = False

    def build_components(self) -> AppState:
        """Construct the components; the single status cache is shared by the broker link and the resolver"""
        try:
            state = self.app_state
            state.status_cache = StatusCache()
            state.direct_link = DirectLinkClient(self.config['device'])
            state.resolver = StatusResolver(state.direct_link, state.status_cache, self.config['status'])
            state.communication_service = CommunicationService(
                self.config, state.status_cache, on_status=state.resolver.note_broker_status
            )
            state.dispatcher = CommandDispatcher(
                state.communication_service,
                state.direct_link,
                wait_for_device=state.direct_link.config.wait_for_command
            )
            return state
        except (ValidationError, CommunicationError) as e:
            raise ConfigurationError(f"Invalid component configuration: {e}")

    async def initialize_components(self):
        """Initialize all application components"""
        self.build_components()
        try:
            await self.app_state.direct_link.start()
            # Does not wait for the broker: an absent broker degrades to cached status
            await self.app_state.communication_service.initialize()
            self.logger.info("All components initialized successfully")
        except Exception:
            raise InitializationError(f"Failed to initialize components: {traceback.format_exc()}")

    async def shutdown(self):
        """Gracefully shutdown all components"""
        if self._stopping:
            return
        self._stopping = True
        self.logger.info("Initiating shutdown sequence")
        try:
            if self.app_state.communication_service:
                await self.app_state.communication_service.shutdown()
            if self.app_state.dispatcher:
                await self.app_state.dispatcher.wait_pending()
            if self.app_state.direct_link:
                await self.app_state.direct_link.stop()
            self.logger.info("Shutdown completed successfully")
        except Exception:
            self.logger.error(f"Error during shutdown: {traceback.format_exc()}")
        finally:
            self.shutdown_event.set()

    def handle_signals(self):
        """Set up signal handlers for graceful shutdown"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._on_signal(s))

    def _on_signal(self, signum):
        self.logger.info(f"Received signal {signum}")
        asyncio.create_task(self.shutdown())

    async def run(self):
        """Main application entry point"""
        try:
            self.handle_signals()
            await self.initialize_components()
            await self.api_server.start()
        except InitializationError:
            self.logger.error(f"Initialization error: {traceback.format_exc()}")
            raise
        finally:
            await self.shutdown()

def main():
    """Application entry point"""
    config_path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("DEVICE_LINK_CONFIG", DEFAULT_CONFIG_PATH)
    try:
        app = DeviceLinkApp(str(Path(config_path)))
    except ConfigurationError:
        get_logger("Main App").error(f"Configuration error: {traceback.format_exc()}")
        sys.exit(1)
    try:
        asyncio.run(app.run())
    except InitializationError:
        sys.exit(1)

if __name__ == "__main__":
    main()
