"""
Server entry point: logging setup and uvicorn startup
"""

from typing import Optional

import uvicorn

from .api import create_app
from .config import NivalusConfig, get_config
from .logging_config import setup_logging


def run_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    config: Optional[NivalusConfig] = None
) -> None:
    """Run the FastAPI server"""
    config = config or get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host or config.api_host,
        port=port or config.api_port,
        log_level=config.log_level.lower()
    )
