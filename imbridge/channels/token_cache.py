"""
Access Token 缓存

按 (平台, 租户) 缓存 access_token:
- 命中且 expires_at > now + 刷新窗口 -> 直接返回
- 未命中或即将过期 -> 调用获取函数,按平台返回的有效期缓存
- 同一个key的并发请求合并为一次获取(single-flight)
- 获取失败不缓存,异常原样抛给调用方,不重试

进程内只应创建一个实例,注入到所有出站适配器;测试中每个用例新建实例。
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# 获取函数返回 (token, 有效期秒数)
TokenFetcher = Callable[[], Tuple[str, float]]


@dataclass
class AccessToken:
    """Token 缓存结构"""
    token: str
    expires_at: float  # Unix timestamp


class TokenCacheService:
    """Access Token 缓存服务"""

    def __init__(self, refresh_margin: float = 300, clock: Callable[[], float] = time.time):
        """
        Args:
            refresh_margin: 提前刷新窗口(秒),默认5分钟
            clock: 时间函数(测试可注入)
        """
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, AccessToken] = {}
        self._inflight: Dict[str, Future] = {}

    @staticmethod
    def cache_key(platform: str, *identity: str) -> str:
        return ":".join([platform, *[str(part) for part in identity]])

    def _is_fresh(self, entry: Optional[AccessToken]) -> bool:
        return entry is not None and entry.expires_at > self._clock() + self.refresh_margin

    def get_token(self, key: str, fetcher: TokenFetcher) -> str:
        """
        获取有效的 access token

        Args:
            key: 缓存key,见cache_key
            fetcher: 调用平台token接口的函数

        Returns:
            access token
        """
        with self._lock:
            entry = self._entries.get(key)
            if self._is_fresh(entry):
                return entry.token

            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.debug(f"Waiting for in-flight token fetch: {key}")
            return future.result()

        try:
            token, expires_in = fetcher()
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(e)
            raise

        entry = AccessToken(token=token, expires_at=self._clock() + float(expires_in))
        with self._lock:
            self._entries[key] = entry
            self._inflight.pop(key, None)
        future.set_result(token)

        logger.info(f"Access token refreshed for {key}, expires in {expires_in}s")
        return token

    def peek(self, key: str) -> Optional[AccessToken]:
        """查看缓存条目(不触发刷新)"""
        with self._lock:
            return self._entries.get(key)

    def invalidate(self, key: str) -> None:
        """使token失效,强制下次重新获取"""
        with self._lock:
            self._entries.pop(key, None)
        logger.info(f"Access token invalidated: {key}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
