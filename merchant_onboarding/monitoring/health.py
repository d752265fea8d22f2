"""
Health check endpoints for Kubernetes readiness/liveness probes.

Checks:
- Database connectivity
- Cache (Redis) connectivity
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text

from merchant_onboarding.cache.backend import RedisCache
from merchant_onboarding.config import get_settings
from merchant_onboarding.database.connection import get_session_factory

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for the onboarding dependencies.

    Provides:
    - Database connectivity check
    - Cache connectivity check
    - Overall system health status
    """

    def __init__(self, cache: Optional[RedisCache] = None) -> None:
        """
        Initialize health check service.

        Args:
            cache: Optional cache backend (created from settings if not provided)
        """
        self.settings = get_settings()
        self.cache = cache

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_cache(self) -> Dict[str, Any]:
        """
        Check cache connectivity.

        Raises:
            HealthCheckError: If the cache ping fails
        """
        cache = self.cache or RedisCache.from_url(self.settings.redis_url)
        try:
            await cache.ping()

            return {
                "status": "healthy",
                "service": "cache",
                "message": "Cache connection successful",
            }

        except Exception as e:
            logger.error("cache_health_check_failed", error=str(e))
            raise HealthCheckError(f"Cache health check failed: {str(e)}")

        finally:
            if self.cache is None:
                await cache.close()

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (("database", self.check_database), ("cache", self.check_cache)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {
                    "status": "unhealthy",
                    "service": name,
                    "error": str(e),
                }
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe endpoint.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: verifies all dependencies are available."""
        return await self.check_all()
