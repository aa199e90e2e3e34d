"""Run the VoiceHub API: ``python -m voicehub``."""

import os

import uvicorn

from .api import build_services, create_app
from .config import load_config
from .config.loaders import DEFAULT_CONFIG_PATH
from .logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    config = load_config(os.getenv("VOICEHUB_CONFIG", DEFAULT_CONFIG_PATH))
    configure_logging(
        log_level=config.logging.level.upper(),
        log_to_file=config.logging.to_file,
        log_file_path=config.logging.file_path,
        log_format=config.logging.format,
    )
    app = create_app(build_services(config))
    uvicorn.run(
        app,
        host=os.getenv("UVICORN_HOST", "127.0.0.1"),
        port=int(os.getenv("UVICORN_PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
