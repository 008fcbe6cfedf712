"""Run the Agent Desk API with uvicorn (development mode)."""

import os
import socket
import sys

from dotenv import load_dotenv

load_dotenv()

from agentdesk.api.config import settings
from agentdesk.api.logging_config import setup_logging

setup_logging()


def is_port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(("localhost", port)) == 0


if __name__ == "__main__":
    port = settings.api_port

    if is_port_in_use(port):
        print(f"Port {port} is already in use; stop that process or change API_PORT in .env")
        sys.exit(1)

    print("=" * 80)
    print(f"Starting server: http://{settings.api_host}:{port}")
    print("=" * 80)

    import uvicorn

    project_root = os.path.dirname(os.path.abspath(__file__))
    try:
        uvicorn.run(
            "agentdesk.api.main:app",
            host=settings.api_host,
            port=port,
            log_level=os.getenv("UVICORN_LOG_LEVEL", "info"),
            access_log=True,
            reload=True,
            reload_dirs=[os.path.join(project_root, "agentdesk")],
        )
    except KeyboardInterrupt:
        print("\nServer stopped")
