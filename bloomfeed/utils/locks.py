# bloomfeed/utils/locks.py
from __future__ import annotations
from typing import Awaitable, Callable, Dict, Optional, TypeVar
from redis.asyncio import Redis
import uuid, asyncio

T = TypeVar("T")

# Delete the key only if we still own it (the TTL may have handed it to someone else)
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisLock:
    """
    Simple, single-instance lock using SET NX EX.
    Prevents multiple workers from regenerating the same user's batch at once.
    """
    def __init__(self, redis: Redis, key: str, ttl: int = 20):
        self.redis = redis
        self.key = f"lock:{key}"
        self.ttl = ttl
        self._token: Optional[str] = None

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        ok = await self.redis.set(self.key, token, nx=True, ex=self.ttl)
        if ok:
            self._token = token
            return True
        return False

    async def release(self) -> None:
        if self._token is None:
            return
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None

    async def wait(self, timeout: float = 10) -> bool:
        """Wait for another worker to release the lock. False on timeout."""
        for _ in range(int(timeout * 10)):
            if not await self.redis.exists(self.key):
                return True
            await asyncio.sleep(0.1)
        return False


class SingleFlight:
    """
    In-process call collapsing keyed by string.

    The first caller for a key runs `fn`; callers arriving while it is in
    flight await the same result (or the same exception) instead of
    running `fn` again. Nothing is remembered once the call settles.

    If the leader is cancelled (caller timeout, client disconnect), waiters
    receive `on_cancel()` when given, else a plain CancelledError.
    """
    def __init__(self) -> None:
        self._inflight: Dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    async def do(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        *,
        on_cancel: Optional[Callable[[], Exception]] = None,
    ) -> T:
        fut = self._inflight.get(key)
        if fut is not None:
            # shield: a cancelled waiter must not cancel the leader's result
            return await asyncio.shield(fut)

        fut = asyncio.get_running_loop().create_future()
        self._inflight[key] = fut
        try:
            result = await fn()
        except asyncio.CancelledError:
            if on_cancel is None:
                fut.cancel()
            else:
                fut.set_exception(on_cancel())
                fut.exception()
            raise
        except Exception as e:
            fut.set_exception(e)
            fut.exception()  # mark retrieved; waiters (if any) still receive it
            raise
        else:
            fut.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)
