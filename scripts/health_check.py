"""
Health check script for all services.

Tests connectivity of every service and of the gateway.

Usage: python scripts/health_check.py [base_host]
"""

import requests
import sys
from typing import Dict

PORTS = {
    "API Gateway": 8000,
    "Users Service": 8001,
    "Halls Service": 8002,
    "Time Slots Service": 8003,
    "Services Service": 8004,
    "Reservations Service": 8005,
}


def check_service(name: str, url: str) -> Dict:
    """Check if a service is healthy."""
    try:
        response = requests.get(url, timeout=5)
    except requests.exceptions.ConnectionError:
        return {
            "name": name,
            "status": "OFFLINE",
            "response": None,
            "error": "Connection refused - service may not be running"
        }
    except requests.exceptions.Timeout:
        return {
            "name": name,
            "status": "TIMEOUT",
            "response": None,
            "error": "Request timed out"
        }

    if response.status_code == 200:
        return {"name": name, "status": "HEALTHY", "response": response.json(), "error": None}
    return {
        "name": name,
        "status": "UNHEALTHY",
        "response": None,
        "error": f"Status code: {response.status_code}"
    }


def main():
    """Run health checks on all services."""
    host = sys.argv[1] if len(sys.argv) > 1 else "localhost"

    print("=" * 70)
    print(" Event Hall Reservation API - Health Check")
    print("=" * 70)
    print()

    results = []
    for service_name, port in PORTS.items():
        print(f"Checking {service_name}...", end=" ")
        result = check_service(service_name, f"http://{host}:{port}/health")
        results.append(result)
        print(result["status"])

        if result["error"]:
            print(f"  Error: {result['error']}")
        elif result["response"]:
            print(f"  Response: {result['response']}")
        print()

    print("=" * 70)
    print(" Summary")
    print("=" * 70)

    healthy_count = sum(1 for r in results if r["status"] == "HEALTHY")
    total_count = len(results)

    print(f"Total Services: {total_count}")
    print(f"Healthy: {healthy_count}")
    print(f"Unhealthy: {total_count - healthy_count}")

    if healthy_count == total_count:
        print("\nAll services are operational!")
        sys.exit(0)

    print("\nSome services are not operational!")
    sys.exit(1)


if __name__ == "__main__":
    main()
