"""FastAPI application factory for Phomemo Label."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from phomemo_label.api import routes as api_routes
from phomemo_label.config import load_config, load_templates, resolve_path, settings
from phomemo_label.models.printer import PrinterEntry
from phomemo_label.printers import BaseTransport, create_transport
from phomemo_label.templates.fonts import FontManager

logger = logging.getLogger(__name__)

# Application state
_printers: dict[str, PrinterEntry] = {}
_transports: dict[str, BaseTransport] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Loading configuration from {settings.config_file}")
    config = load_config(settings.config_file)

    fonts_path = resolve_path(config.fonts_dir, settings.config_file)
    font_manager = FontManager(custom_paths=[fonts_path] if fonts_path.exists() else None)

    # Load templates
    templates_path = resolve_path(config.templates_dir, settings.config_file)
    logger.info(f"Loading templates from {templates_path}")
    template_result = load_templates(templates_path)
    logger.info(f"Loaded {len(template_result.templates)} templates")
    for warning in template_result.warnings:
        logger.warning(warning)

    # Initialize printers; serial ports are opened on first print
    for entry in config.printers:
        if not entry.enabled:
            logger.info(f"Skipping disabled printer: {entry.name}")
            continue

        try:
            _transports[entry.name] = create_transport(entry)
            _printers[entry.name] = entry
            logger.info(f"Initialized printer: {entry.name} ({entry.settings.device_model} on {entry.connection.device})")
        except ValueError as e:
            logger.error(f"Failed to initialize printer {entry.name}: {e}")

    api_routes.set_app_state(
        _printers,
        _transports,
        template_result.templates,
        padding=config.padding_px,
        print_timeout=config.print_timeout,
        font_manager=font_manager,
        api_key=config.api_key,
    )

    logger.info("Phomemo Label startup complete")

    yield

    logger.info("Phomemo Label shutting down")

    for transport in _transports.values():
        try:
            await transport.disconnect()
        except OSError as e:
            logger.error(f"Error disconnecting printer {transport.name}: {e}")
    _transports.clear()
    _printers.clear()

    logger.info("Phomemo Label shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Phomemo Label",
        description="Template-driven label printing for Phomemo thermal printers",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(
        api_routes.router,
        dependencies=[Depends(api_routes.verify_api_key)],
    )

    return app


# Default app instance for uvicorn
app = create_app()
