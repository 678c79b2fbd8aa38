import anthropic
import time
import logging
from typing import Any, Dict, List, Optional

from langfuse import Langfuse

from .config import Settings
from .logging_config import ExternalServiceError

logger = logging.getLogger(__name__)

SYSTEM_ORCHESTRATOR = """You are the data assistant of a personal fitness dashboard.
Objectives: (1) turn short voice or text notes (usually in Spanish) into structured fitness data,
(2) return STRICT JSON exactly in the requested shape, (3) never invent values the user did not mention.
"""

def build_anthropic_client(settings: Settings) -> Optional[anthropic.Anthropic]:
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not configured; extraction is disabled")
        return None
    return anthropic.Anthropic(api_key=settings.anthropic_api_key)

def build_langfuse(settings: Settings) -> Optional[Langfuse]:
    if not settings.langfuse_public_key:
        return None
    return Langfuse(
        public_key=settings.langfuse_public_key,
        secret_key=settings.langfuse_secret_key,
        host=settings.langfuse_host
    )

def response_text(resp) -> str:
    """Concatenate the text blocks of a Messages API response"""
    parts = [getattr(block, "text", "") for block in (resp.content or [])]
    return "".join(p for p in parts if p)

def claude_call(client: Optional[anthropic.Anthropic],
                messages: List[Dict[str, Any]],
                model: str = "claude-3-5-haiku-20241022",
                system: str = None,
                max_tokens: int = 1000,
                tracer: Optional[Langfuse] = None,
                metadata: Dict[str, Any] = None):
    start = time.time()
    trace = tracer.trace(name="claude_call", metadata=metadata or {}) if tracer else None

    if client is None:
        raise ExternalServiceError("Claude API", "ANTHROPIC_API_KEY not configured")

    try:
        resp = client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system or SYSTEM_ORCHESTRATOR,
            messages=messages,
        )

        latency = int((time.time() - start) * 1000)

        if trace:
            trace.update(
                output=response_text(resp),
                metadata={
                    **(metadata or {}),
                    "model": model,
                    "latency_ms": latency,
                    "usage": {
                        "input_tokens": resp.usage.input_tokens if hasattr(resp, 'usage') else 0,
                        "output_tokens": resp.usage.output_tokens if hasattr(resp, 'usage') else 0
                    }
                }
            )

        log_tool_run(
            tool_name=(metadata or {}).get("tool", "claude_call"),
            model=model,
            latency_ms=latency,
            success=True
        )

        return resp
    except Exception as e:
        if trace:
            trace.update(
                level="ERROR",
                metadata={**(metadata or {}), "error": str(e)}
            )

        log_tool_run(
            tool_name=(metadata or {}).get("tool", "claude_call"),
            model=model,
            latency_ms=int((time.time() - start) * 1000),
            success=False,
            error=str(e)
        )

        raise ExternalServiceError("Claude API", str(e)) from e

def log_tool_run(tool_name, model, latency_ms, success, error=None, user_id=None):
    logger.info(
        f"LLM call {tool_name} {'ok' if success else 'failed'}",
        extra={
            "tool_name": tool_name,
            "model": model,
            "latency_ms": latency_ms,
            "success": success,
            "error": error,
            "user_id": user_id,
        }
    )
