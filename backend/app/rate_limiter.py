import time
from typing import Dict, Optional, Tuple
from collections import defaultdict, deque
from fastapi import HTTPException, Request

# (requests per window, window seconds)
LIMITS = {
    'default': (100, 60),
    'log': (30, 60),      # every log entry is one extraction call
    'coach': (10, 60),
}

class RateLimiter:
    """Sliding-window limiter kept in process memory.

    Good enough for a single-worker personal deployment; counts are lost on
    restart and not shared between workers.
    """

    def __init__(self, limits: Optional[Dict[str, Tuple[int, int]]] = None, clock=time.time):
        self.limits = dict(limits or LIMITS)
        self.clock = clock
        self.hits = defaultdict(deque)
        self.cleanup_interval = 300
        self.last_cleanup = clock()

    def caller_key(self, request: Request, user_id: Optional[str] = None) -> str:
        if user_id:
            return f"user:{user_id}"

        # Behind the hosting proxy the peer address is the proxy's
        real_ip = request.headers.get("X-Real-IP")
        forwarded_for = request.headers.get("X-Forwarded-For")
        if real_ip:
            client_ip = real_ip
        elif forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def hit(self, key: str, limit_type: str = 'default') -> Tuple[bool, Dict]:
        """Record one request for `key`; returns (allowed, window info)"""
        now = self.clock()
        if now - self.last_cleanup > self.cleanup_interval:
            self._drop_idle(now)

        max_requests, window = self.limits.get(limit_type, self.limits['default'])
        bucket = self.hits[f"{limit_type}:{key}"]
        while bucket and bucket[0] <= now - window:
            bucket.popleft()

        if len(bucket) >= max_requests:
            retry_after = max(1, int(bucket[0] + window - now))
            return False, {'limit': max_requests, 'window': window, 'retry_after': retry_after}

        bucket.append(now)
        return True, {'limit': max_requests, 'window': window, 'remaining': max_requests - len(bucket)}

    def _drop_idle(self, now: float):
        longest = max(window for _, window in self.limits.values())
        for key in [k for k, bucket in self.hits.items() if not bucket or bucket[-1] <= now - longest]:
            del self.hits[key]
        self.last_cleanup = now

def check_rate_limit(rate_limiter: RateLimiter, request: Request, user_id: str = None, limit_type: str = 'default'):
    """Raise 429 when the caller is over its limit"""
    allowed, info = rate_limiter.hit(rate_limiter.caller_key(request, user_id), limit_type)

    if not allowed:
        raise HTTPException(
            status_code=429,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Try again in {info['retry_after']} seconds.",
                "retry_after": info['retry_after']
            },
            headers={
                "Retry-After": str(info['retry_after']),
                "X-RateLimit-Limit": str(info['limit']),
                "X-RateLimit-Remaining": "0"
            }
        )

    return info
