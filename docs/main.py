"""
Service Discovery / Documentation Service
Provides a single entry point to discover all SafeHER services.
"""

from common.constants import SERVICES
from libs.fastapi_service import (
    CORSMiddlewareConfig,
    FastAPIServiceFactory,
    ServiceAppConfig,
)

# Create service configuration
service_config = ServiceAppConfig(
    title="SafeHER Services Discovery",
    description="Service discovery and documentation endpoint for all SafeHER services.",
    service_name="service_discovery",
    cors_config=CORSMiddlewareConfig(),
    enable_metrics=False,  # This is just a discovery endpoint
)

# Create factory and build app
factory = FastAPIServiceFactory(service_config)
app = factory.create_app()


@app.get("/")
async def index():
    """Service discovery endpoint - lists all available services."""
    return {
        "services": {
            name: f"http://127.0.0.1:{port}/docs" for name, (_, port) in SERVICES.items()
        },
        "description": "SafeHER Services - Click on any service to view its API documentation",
    }
