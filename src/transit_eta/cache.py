import time
from typing import Callable, Any, Dict, Optional, Tuple

def ttl_cache(seconds: float, key: Optional[Callable[..., Any]] = None):
    """Memoise an async function's successful results for `seconds`; failures are never cached.

    `key` builds the cache key from the call arguments, for arguments that
    should not take part in it (an http client, say).
    """
    store: Dict[Any, Tuple[float, Any]] = {}
    def deco(fn: Callable):
        async def wrapped(*args, **kwargs):
            k = key(*args, **kwargs) if key else (fn.__name__, args, tuple(sorted(kwargs.items())))
            now = time.monotonic()
            if k in store:
                ts, val = store[k]
                if now - ts < seconds:
                    return val
            val = await fn(*args, **kwargs)
            # drop expired entries so keys for lines nobody asks about anymore don't pile up
            for old in [old for old, (ts, _) in store.items() if now - ts >= seconds]:
                del store[old]
            store[k] = (now, val)
            return val
        return wrapped
    return deco
