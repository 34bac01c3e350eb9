#!/usr/bin/env python3
"""
Crediário Service Entry Point

Starts the FastAPI server (port 8090 by default, see CREDIARIO_API_PORT).
"""

import sys

from crediario.api import run_server
from crediario.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Crediário service...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    if config.seed_demo_data:
        print("Demo logins: admin@sistema.com / comerciante@loja.com / caixa@loja.com")
    print()

    try:
        run_server(debug="--reload" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Crediário service...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
