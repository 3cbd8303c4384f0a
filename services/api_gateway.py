"""
API Gateway with Load Balancing

This module implements the single entry point of the Event Hall
Reservation API.

Features:
- Request routing based on the first path segment
- Round-robin load balancing across service instances
- Periodic health checks of backend services
- Unhealthy instances skipped after consecutive failures
- Request/response logging

Backend instances are read from ``<SERVICE>_SERVICE_URLS`` environment
variables (comma separated), e.g. ``HALLS_SERVICE_URLS``.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, HTTPException, Response, status
import httpx
from typing import Dict, List, Optional
import asyncio
from datetime import datetime
import logging
import os
from enum import Enum

import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.monitoring import get_metrics_summary, setup_metrics

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_SERVICE_URLS = {
    "users": "http://localhost:8001",
    "halls": "http://localhost:8002",
    "time_slots": "http://localhost:8003",
    "services": "http://localhost:8004",
    "reservations": "http://localhost:8005",
}

# first path segment -> backend service
ROUTES = {
    "auth": "users",
    "users": "users",
    "halls": "halls",
    "time-slots": "time_slots",
    "services": "services",
    "reservations": "reservations",
    "notifications": "reservations",
}

HEALTH_CHECK_INTERVAL = int(os.getenv("HEALTH_CHECK_INTERVAL", 30))
HOP_BY_HOP_HEADERS = {"host", "content-length", "transfer-encoding", "connection", "keep-alive"}


class ServiceStatus(str, Enum):
    """Service health status."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class ServiceEndpoint:
    """
    Represents a backend service instance.

    Attributes:
        url: Service URL
        status: Current health status
        last_check: Last health check timestamp
        failure_count: Number of consecutive failures
    """

    def __init__(self, url: str):
        self.url = url.rstrip("/")
        self.status = ServiceStatus.UNKNOWN
        self.last_check = None
        self.failure_count = 0
        self.response_times = []

    def record_success(self, response_time: float):
        """
        Record successful request.

        Args:
            response_time: Response time in seconds
        """
        self.status = ServiceStatus.HEALTHY
        self.failure_count = 0
        self.last_check = datetime.utcnow()
        self.response_times.append(response_time)

        if len(self.response_times) > 100:
            self.response_times = self.response_times[-100:]

    def record_failure(self):
        """Record failed request."""
        self.failure_count += 1
        self.last_check = datetime.utcnow()

        if self.failure_count >= 3:
            self.status = ServiceStatus.UNHEALTHY

    def get_avg_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)


class LoadBalancer:
    """Round-robin load balancer over the instances of one service."""

    def __init__(self, service_name: str, endpoints: List[str]):
        """
        Initialize load balancer.

        Args:
            service_name: Name of the service
            endpoints: List of service endpoint URLs
        """
        self.service_name = service_name
        self.endpoints = [ServiceEndpoint(url) for url in endpoints]
        self.current_index = 0

    def get_next_endpoint(self) -> Optional[ServiceEndpoint]:
        """
        Get next healthy endpoint using round-robin.

        Falls back to the first endpoint when every instance is unhealthy.

        Returns:
            ServiceEndpoint: Next endpoint or None when none is configured
        """
        for _ in range(len(self.endpoints)):
            endpoint = self.endpoints[self.current_index]
            self.current_index = (self.current_index + 1) % len(self.endpoints)

            if endpoint.status != ServiceStatus.UNHEALTHY:
                return endpoint

        return self.endpoints[0] if self.endpoints else None

    async def health_check(self, client: httpx.AsyncClient):
        """Probe ``/health`` on every endpoint."""
        for endpoint in self.endpoints:
            try:
                response = await client.get(f"{endpoint.url}/health", timeout=5.0)
            except httpx.HTTPError as e:
                logger.error(f"Health check failed for {endpoint.url}: {e}")
                endpoint.record_failure()
                continue

            if response.status_code == 200:
                endpoint.record_success(response.elapsed.total_seconds())
            else:
                endpoint.record_failure()

    def get_status(self) -> dict:
        return {
            "service": self.service_name,
            "endpoints": [
                {
                    "url": ep.url,
                    "status": ep.status.value,
                    "failure_count": ep.failure_count,
                    "avg_response_time": round(ep.get_avg_response_time(), 3),
                    "last_check": ep.last_check.isoformat() if ep.last_check else None
                }
                for ep in self.endpoints
            ]
        }


def configured_service_urls() -> Dict[str, List[str]]:
    """Read instance URLs per service from the environment."""
    services = {}
    for name, default in DEFAULT_SERVICE_URLS.items():
        raw = os.getenv(f"{name.upper()}_SERVICE_URLS", default)
        services[name] = [url.strip() for url in raw.split(",") if url.strip()]
    return services


class APIGateway:
    """
    API Gateway for routing requests to backend services.

    Example:
        >>> gateway = APIGateway({"halls": ["http://halls:8002"]})
        >>> gateway.get_service_from_path("/halls/3")
        'halls'
    """

    def __init__(self, services: Optional[Dict[str, List[str]]] = None):
        self.load_balancers: Dict[str, LoadBalancer] = {}
        self.client = httpx.AsyncClient(timeout=30.0)
        for service_name, endpoints in (services or configured_service_urls()).items():
            self.load_balancers[service_name] = LoadBalancer(service_name, endpoints)

    def get_service_from_path(self, path: str) -> Optional[str]:
        """
        Map a request path to the service owning it.

        Args:
            path: Request path

        Returns:
            str: Service name or None
        """
        first = path.strip('/').split('/')[0]
        return ROUTES.get(first)

    async def route_request(
        self,
        method: str,
        path: str,
        headers: dict,
        params=None,
        body: bytes = b""
    ) -> httpx.Response:
        """
        Forward a request to an instance of the owning service.

        Raises:
            HTTPException: 404 unknown route, 503 no instance, 502 transport error
        """
        service_name = self.get_service_from_path(path)

        if not service_name or service_name not in self.load_balancers:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Service not found"
            )

        endpoint = self.load_balancers[service_name].get_next_endpoint()
        if not endpoint:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Service {service_name} is unavailable"
            )

        target_url = f"{endpoint.url}{path}"
        forward_headers = {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}

        try:
            start_time = datetime.utcnow()
            response = await self.client.request(
                method=method,
                url=target_url,
                headers=forward_headers,
                params=params,
                content=body or None
            )
        except httpx.HTTPError as e:
            endpoint.record_failure()
            logger.error(f"Request to {target_url} failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Error communicating with {service_name} service"
            )

        endpoint.record_success((datetime.utcnow() - start_time).total_seconds())
        logger.info(f"{method} {path} -> {target_url} [{response.status_code}]")
        return response

    async def health_check_all(self):
        """Perform health checks on all services."""
        await asyncio.gather(*[
            lb.health_check(self.client) for lb in self.load_balancers.values()
        ])

    def get_gateway_status(self) -> dict:
        return {
            "gateway": "operational",
            "timestamp": datetime.utcnow().isoformat(),
            "services": {
                name: lb.get_status()
                for name, lb in self.load_balancers.items()
            },
            "metrics": get_metrics_summary()
        }

    async def close(self):
        await self.client.aclose()


gateway = APIGateway()


async def periodic_health_checks():
    """Perform health checks every HEALTH_CHECK_INTERVAL seconds."""
    while True:
        await asyncio.sleep(HEALTH_CHECK_INTERVAL)
        await gateway.health_check_all()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check backends on startup and keep checking until shutdown."""
    await gateway.health_check_all()
    task = asyncio.create_task(periodic_health_checks())
    yield
    task.cancel()
    await gateway.close()


app = FastAPI(title="Event Hall Reservation API Gateway", version="1.0.0", lifespan=lifespan)
setup_metrics(app, "gateway")


@app.get("/health")
async def health_check():
    """Gateway liveness."""
    return {"status": "healthy", "service": "gateway"}


@app.get("/gateway/status")
async def gateway_status():
    """
    Detailed gateway status endpoint.

    Returns:
        dict: Status of every backend instance
    """
    return gateway.get_gateway_status()


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
async def gateway_handler(request: Request, path: str):
    """
    Route every other request to its backend service.

    Args:
        request: FastAPI request object
        path: Request path

    Returns:
        Response: Backend response, status and body unchanged
    """
    response = await gateway.route_request(
        method=request.method,
        path=f"/{path}",
        headers=dict(request.headers),
        params=request.query_params.multi_items(),
        body=await request.body()
    )

    headers = {k: v for k, v in response.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS | {"content-encoding"}}
    return Response(
        content=response.content,
        status_code=response.status_code,
        headers=headers
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
