from datetime import datetime
from typing import Dict, Any, Optional


def create_health_response(
    service_name: str,
    version: str,
    additional_checks: Optional[Dict[str, bool]] = None
) -> Dict[str, Any]:
    """Create standardized health check response"""

    health_data = {
        "service": service_name,
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": version
    }

    if additional_checks:
        health_data["checks"] = additional_checks
        # Any failing check marks the whole service unhealthy
        if not all(additional_checks.values()):
            health_data["status"] = "unhealthy"

    return health_data
