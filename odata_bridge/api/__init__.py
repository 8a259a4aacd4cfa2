"""
odata_bridge.api - Optional REST API Gateway
=============================================

This module provides an optional FastAPI-based REST gateway
for exposing one OData v4 service via HTTP.

Usage
-----
>>> from odata_bridge.api import create_app
>>> app = create_app()
>>> # Run with: uvicorn odata_bridge.api:app

Or run directly:
>>> python -m odata_bridge.api

"""

from pathlib import Path

from dotenv import load_dotenv

# Load .env before the gateway reads its configuration
env_path = Path.cwd() / ".env"
if not env_path.exists():
    env_path = Path(__file__).resolve().parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from odata_bridge.api.gateway import create_app, ODataGateway, error_to_http

# Create default app instance for uvicorn
app = create_app()

__all__ = [
    "create_app",
    "ODataGateway",
    "error_to_http",
    "app",
]
