"""
Development server runner.

Reads host and port from the TaskRelay settings so `.env` overrides apply.

Usage: python run_server.py
"""

from __future__ import annotations

from uvicorn import Config, Server

from taskrelay.core.config import get_settings


def main():
    settings = get_settings()
    config = Config(
        app="taskrelay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_env == "development",
        reload_dirs=["taskrelay"],
    )

    server = Server(config=config)
    server.run()


if __name__ == "__main__":
    main()
