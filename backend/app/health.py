import asyncio
import time
from typing import Any, Dict
from datetime import datetime, timezone
import logging

import psutil
import sentry_sdk

from .config import Settings
from .logging_config import DatabaseError, ExternalServiceError

logger = logging.getLogger(__name__)

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

class HealthChecker:
    """Dependency checks for /health/full"""

    def __init__(self, store, llm_client, settings: Settings):
        self.store = store
        self.llm_client = llm_client
        self.settings = settings
        self.checks = {
            'database': self._check_database,
            'claude_api': self._check_claude_api,
            'langfuse': self._check_langfuse,
            'sentry': self._check_sentry
        }

    async def run_all_checks(self) -> Dict[str, Any]:
        """Run all health checks and return comprehensive status"""
        start_time = time.time()

        names = list(self.checks)
        check_results = await asyncio.gather(
            *(self._run_single_check(name, self.checks[name]) for name in names)
        )
        results = dict(zip(names, check_results))
        overall_healthy = all(r['healthy'] for r in check_results)

        return {
            'status': 'healthy' if overall_healthy else 'degraded',
            'timestamp': utc_now_iso(),
            'response_time_ms': int((time.time() - start_time) * 1000),
            'checks': results,
            'environment': self.settings.environment
        }

    async def _run_single_check(self, name: str, check_func) -> Dict[str, Any]:
        """Run a single health check with timing"""
        start_time = time.time()
        try:
            result = await check_func()
            return {
                'status': 'ok',
                'healthy': True,
                'response_time_ms': int((time.time() - start_time) * 1000),
                **result
            }
        except Exception as e:
            logger.error(f"Health check failed for {name}: {e}")
            return {
                'status': 'error',
                'healthy': False,
                'error': str(e),
                'response_time_ms': int((time.time() - start_time) * 1000)
            }

    async def _check_database(self) -> Dict[str, Any]:
        if self.store is None:
            raise DatabaseError("health_check", "store not initialized")
        if not await asyncio.to_thread(self.store.ping):
            raise DatabaseError("health_check", "ping failed")
        return {'connection': 'ok'}

    async def _check_claude_api(self) -> Dict[str, Any]:
        if self.llm_client is None:
            raise ExternalServiceError("Claude API", "API key not configured")
        return {'connection': 'configured', 'model': self.settings.extractor_model}

    async def _check_langfuse(self) -> Dict[str, Any]:
        if not self.settings.langfuse_public_key:
            return {'connection': 'disabled', 'details': 'Langfuse not configured'}
        return {'connection': 'configured', 'host': self.settings.langfuse_host}

    async def _check_sentry(self) -> Dict[str, Any]:
        if not self.settings.sentry_dsn:
            return {'connection': 'disabled', 'details': 'Sentry not configured'}
        if sentry_sdk.get_client().is_active() is False:
            raise ExternalServiceError("Sentry", "client not initialized")
        return {'connection': 'ok', 'dsn_configured': True}

class MetricsCollector:
    """Collect application metrics for monitoring"""

    def __init__(self):
        self.start_time = time.time()
        self.request_count = 0
        self.error_count = 0
        self.entries_logged = 0
        self.entries_removed = 0
        self.extraction_failures = 0

    def get_metrics(self) -> Dict[str, Any]:
        """Get current application metrics"""
        uptime_seconds = int(time.time() - self.start_time)

        return {
            'uptime_seconds': uptime_seconds,
            'uptime_human': self._format_uptime(uptime_seconds),
            'requests_total': self.request_count,
            'errors_total': self.error_count,
            'error_rate': self.error_count / max(self.request_count, 1),
            'entries_logged': self.entries_logged,
            'entries_removed': self.entries_removed,
            'extraction_failures': self.extraction_failures,
            'memory_usage': self._get_memory_usage(),
            'timestamp': utc_now_iso()
        }

    def increment_requests(self):
        self.request_count += 1

    def increment_errors(self):
        self.error_count += 1

    def _format_uptime(self, seconds: int) -> str:
        """Format uptime in human readable format"""
        days = seconds // 86400
        hours = (seconds % 86400) // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60

        if days > 0:
            return f"{days}d {hours}h {minutes}m {secs}s"
        elif hours > 0:
            return f"{hours}h {minutes}m {secs}s"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        else:
            return f"{secs}s"

    def _get_memory_usage(self) -> Dict[str, Any]:
        memory_info = psutil.Process().memory_info()
        return {
            'rss_mb': round(memory_info.rss / 1024 / 1024, 2),
            'vms_mb': round(memory_info.vms / 1024 / 1024, 2)
        }
