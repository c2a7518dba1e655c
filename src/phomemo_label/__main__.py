"""Entry point for running Phomemo Label as a module."""

import logging
import sys

import uvicorn

from phomemo_label.config import load_config, resolve_path, settings


def main() -> int:
    """Run the Phomemo Label server."""
    # Configure logging
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Build uvicorn config
    uvicorn_kwargs: dict = {
        "host": settings.host,
        "port": settings.port,
        "reload": settings.debug,
    }

    # In debug mode, watch templates directory for changes
    if settings.debug:
        config = load_config(settings.config_file)
        templates_path = resolve_path(config.templates_dir, settings.config_file)
        if templates_path.exists():
            uvicorn_kwargs["reload_dirs"] = [str(templates_path)]
            uvicorn_kwargs["reload_includes"] = ["*.svg", "*.yaml"]

    # Run the server
    uvicorn.run("phomemo_label.app:app", **uvicorn_kwargs)

    return 0


if __name__ == "__main__":
    sys.exit(main())
