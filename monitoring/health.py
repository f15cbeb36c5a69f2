"""
Liveness and readiness checks.

Checks:
- Stripe API reachability
- Redis connectivity (only when event de-duplication is enabled)
"""
from typing import Any, Dict, Optional

import structlog

from config.settings import Settings

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the pipeline's external dependencies."""

    def __init__(
        self, settings: Settings, stripe_client: Any, deduplicator: Optional[Any] = None
    ) -> None:
        self.settings = settings
        self.stripe_client = stripe_client
        self.deduplicator = deduplicator

    async def check_stripe(self) -> Dict[str, Any]:
        """
        Check Stripe API reachability.

        Raises:
            HealthCheckError: If Stripe check fails
        """
        try:
            await self.stripe_client.ping()
            return {
                "status": "healthy",
                "service": "stripe",
                "message": "Stripe API connection successful",
                "test_mode": self.settings.is_test_mode,
            }
        except Exception as e:
            logger.error("stripe_health_check_failed", error=str(e))
            raise HealthCheckError(f"Stripe health check failed: {str(e)}")

    async def check_redis(self) -> Dict[str, Any]:
        """
        Check Redis connectivity.

        Raises:
            HealthCheckError: If Redis check fails
        """
        try:
            await self.deduplicator.ping()
            return {
                "status": "healthy",
                "service": "redis",
                "message": "Redis connection successful",
            }
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            raise HealthCheckError(f"Redis health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """Run all health checks."""
        checks = {}
        all_healthy = True

        try:
            checks["stripe"] = await self.check_stripe()
        except HealthCheckError as e:
            checks["stripe"] = {"status": "unhealthy", "service": "stripe", "error": str(e)}
            all_healthy = False

        if self.deduplicator is not None:
            try:
                checks["redis"] = await self.check_redis()
            except HealthCheckError as e:
                checks["redis"] = {"status": "unhealthy", "service": "redis", "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Simple check that the application is running."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Checks if application is ready to accept traffic."""
        return await self.check_all()
