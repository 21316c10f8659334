"""
平台API调用基类

统一处理:
1. 超时(settings.HTTP_TIMEOUT)
2. 网络异常 -> TransportError
3. 非2xx / 非JSON响应 -> VendorApiError
4. 媒体下载(先下载再上传到平台素材接口)
平台自身的错误码由子类的 _check_response 判断。不做重试。
"""

import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests
from pydantic import BaseModel

from imbridge.channels.token_cache import TokenCacheService
from imbridge.config.settings import Settings, get_settings
from imbridge.errors import TransportError, VendorApiError

logger = logging.getLogger(__name__)


def redact_url(url: str) -> str:
    """去掉query(可能包含access_token/签名)"""
    return url.split("?", 1)[0]


class MediaFile(BaseModel):
    """下载到内存的媒体文件"""
    content: bytes
    filename: str
    content_type: str = "application/octet-stream"


def media_filename(url: str, default: str = "file") -> str:
    """取URL路径的最后一段作为文件名"""
    return os.path.basename(urlparse(url or "").path) or default


class VendorHttpClient:
    """平台HTTP客户端基类"""

    platform: str = ""

    def __init__(
        self,
        token_cache: TokenCacheService,
        settings: Optional[Settings] = None,
        request_timeout: Optional[float] = None,
    ):
        self.token_cache = token_cache
        self.settings = settings or get_settings()
        self.request_timeout = request_timeout or self.settings.HTTP_TIMEOUT

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        发送HTTP请求并返回JSON

        Raises:
            TransportError: 网络异常/超时
            VendorApiError: HTTP错误、响应不是JSON对象、或平台错误码非0
        """
        try:
            response = requests.request(method, url, timeout=self.request_timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{self.platform} request failed: {method} {redact_url(url)}: {e}")
            raise TransportError(self.platform, str(e)) from e

        data: Any = {}
        if response.content:
            try:
                data = response.json()
            except ValueError:
                data = None

        if not response.ok:
            message = response.text[:200] if data is None else str(data)[:200]
            logger.error(f"{self.platform} HTTP {response.status_code}: {redact_url(url)}")
            raise VendorApiError(self.platform, response.status_code, message)

        if not isinstance(data, dict):
            raise VendorApiError(self.platform, response.status_code, "Response is not a JSON object")

        self._check_response(data)
        return data

    def _check_response(self, data: Dict[str, Any]) -> None:
        """子类根据平台错误码抛出VendorApiError"""
        pass

    def download_media(self, url: str) -> MediaFile:
        """
        下载媒体文件,供平台素材上传接口使用

        Raises:
            TransportError: 网络异常/超时
            VendorApiError: HTTP错误或内容为空
        """
        try:
            response = requests.request("GET", url, timeout=self.request_timeout)
        except requests.RequestException as e:
            logger.error(f"{self.platform} media download failed: {redact_url(url)}: {e}")
            raise TransportError(self.platform, str(e)) from e

        if not response.ok or not response.content:
            logger.error(f"{self.platform} media download HTTP {response.status_code}: {redact_url(url)}")
            raise VendorApiError(self.platform, response.status_code, f"Media download failed: {redact_url(url)}")

        content_type = response.headers.get("Content-Type", "application/octet-stream").split(";", 1)[0].strip()
        logger.info(f"Downloaded media for {self.platform}: {redact_url(url)} ({len(response.content)} bytes)")
        return MediaFile(
            content=response.content,
            filename=media_filename(url),
            content_type=content_type or "application/octet-stream",
        )
