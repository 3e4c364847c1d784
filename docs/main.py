"""
Service Discovery / Documentation Service
Provides a single entry point to discover the civic complaints microservices.
"""

# uvicorn docs.main:app --host 0.0.0.0 --port 8080

import os

from common.constants import SERVICES
from libs.fastapi_service import (
    CORSMiddlewareConfig,
    FastAPIServiceFactory,
    ServiceAppConfig,
)

# Host the service links point at (the discovery page is for local development)
SERVICE_HOST = os.getenv("SERVICE_HOST", "127.0.0.1")

service_config = ServiceAppConfig(
    title="Civic Complaints Services Discovery",
    description="Service discovery and documentation endpoint for all civic complaints microservices.",
    service_name="service_discovery",
    cors_config=CORSMiddlewareConfig(),
    enable_metrics=False,  # This is just a discovery endpoint
)

factory = FastAPIServiceFactory(service_config)
app = factory.create_app()


@app.get("/")
async def index():
    """Service discovery endpoint - lists all available services."""
    return {
        "services": {
            name: f"http://{SERVICE_HOST}:{port}/docs" for name, (_module, port) in SERVICES.items()
        },
        "description": "Civic complaint microservices - open a link to view its API documentation",
    }
