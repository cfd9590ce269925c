#!/usr/bin/env python3
"""
Nivalus Banking Core Entry Point

Starts the FastAPI server with host, port and storage taken from
NIVALUS_* environment variables or .env.
"""

import sys

from nivalus_core.config import get_config
from nivalus_core.server import run_server


if __name__ == "__main__":
    config = get_config()
    print("Starting Nivalus Banking Core...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        run_server(config=config)
    except KeyboardInterrupt:
        print("\nShutting down Nivalus Banking Core...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
