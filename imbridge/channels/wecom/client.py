"""
企业微信 API 客户端

封装企业微信API调用,负责:
1. Access Token获取(经由共享TokenCacheService缓存)
2. 应用消息发送(message/send)
3. 群聊消息发送(appchat/send)
4. 临时素材上传(media/upload,图片/文件消息需要media_id)
5. 群机器人Webhook发送与文件上传(按key鉴权,不需要access_token)
"""

import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from imbridge.channels.base import ResolvedAccount
from imbridge.channels.http import MediaFile, VendorHttpClient
from imbridge.errors import ConfigurationError, VendorApiError

logger = logging.getLogger(__name__)

# access_token过期/无效
TOKEN_EXPIRED_CODES = {40014, 42001}


def webhook_key(webhook_url: str) -> str:
    """从群机器人地址中取出key参数"""
    keys = parse_qs(urlparse(webhook_url).query).get("key")
    if not keys or not keys[0]:
        raise ConfigurationError("WeCom webhook url has no key parameter")
    return keys[0]


class WeComClient(VendorHttpClient):
    """企业微信 API 客户端"""

    platform = "wecom"

    @property
    def api_base_url(self) -> str:
        return self.settings.WECOM_API_BASE.rstrip("/")

    def token_key(self, account: ResolvedAccount) -> str:
        config = account.config
        return self.token_cache.cache_key(self.platform, config.corp_id, config.agent_id)

    def _check_response(self, data: Dict[str, Any]) -> None:
        errcode = data.get("errcode", 0)
        if errcode:
            raise VendorApiError(self.platform, errcode, data.get("errmsg", "Unknown error"))

    def get_access_token(self, account: ResolvedAccount) -> str:
        """获取有效的access_token(自动刷新)"""
        return self.token_cache.get_token(self.token_key(account), lambda: self._fetch_token(account))

    def _fetch_token(self, account: ResolvedAccount) -> Tuple[str, int]:
        """从企微API获取access_token"""
        config = account.config
        data = self._request(
            "GET",
            f"{self.api_base_url}/gettoken",
            params={"corpid": config.corp_id, "corpsecret": config.secret},
        )
        return data["access_token"], int(data.get("expires_in", 7200))

    def _post(
        self,
        account: ResolvedAccount,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        token = self.get_access_token(account)
        query = {"access_token": token}
        query.update(params or {})
        if body is not None:
            kwargs["json"] = body
        try:
            return self._request("POST", f"{self.api_base_url}{path}", params=query, **kwargs)
        except VendorApiError as e:
            if e.code in TOKEN_EXPIRED_CODES:
                self.token_cache.invalidate(self.token_key(account))
            raise

    def send_message(self, account: ResolvedAccount, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        发送应用消息

        Args:
            account: 租户账号
            message: 消息体(含touser/toparty/totag与msgtype)

        Returns:
            API响应(含msgid)
        """
        agent_id = account.config.agent_id
        body = dict(message)
        body["agentid"] = int(agent_id) if agent_id.isdigit() else agent_id
        return self._post(account, "/message/send", body)

    def send_appchat(self, account: ResolvedAccount, message: Dict[str, Any]) -> Dict[str, Any]:
        """发送群聊会话消息(需要chatid)"""
        return self._post(account, "/appchat/send", message)

    def upload_media(self, account: ResolvedAccount, media_type: str, media: MediaFile) -> str:
        """
        上传临时素材

        Args:
            media_type: image / voice / video / file
            media: 已下载的媒体文件

        Returns:
            media_id(3天内有效)
        """
        data = self._post(
            account,
            "/media/upload",
            params={"type": media_type},
            files={"media": (media.filename, media.content, media.content_type)},
        )
        logger.info(f"Uploaded wecom {media_type}: {media.filename}")
        return data["media_id"]

    def send_webhook(self, webhook_url: str, message: Dict[str, Any]) -> Dict[str, Any]:
        """群机器人发送(text/markdown/image/file)"""
        return self._request("POST", webhook_url, json=message)

    def upload_webhook_media(self, webhook_url: str, media: MediaFile) -> str:
        """群机器人文件上传,返回media_id"""
        data = self._request(
            "POST",
            f"{self.api_base_url}/webhook/upload_media",
            params={"key": webhook_key(webhook_url), "type": "file"},
            files={"media": (media.filename, media.content, media.content_type)},
        )
        return data["media_id"]
