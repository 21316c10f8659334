"""
QQ 官方机器人 API 客户端

负责:
1. AccessToken获取(bots.qq.com/app/getAppAccessToken)
2. 频道 / 频道私信 / 群 / 单聊消息发送
3. 富媒体上传(群/单聊发送图片前需先上传得到file_info)
"""

import logging
from typing import Any, Dict, Optional, Tuple

from imbridge.channels.base import ResolvedAccount
from imbridge.channels.http import VendorHttpClient
from imbridge.errors import VendorApiError

logger = logging.getLogger(__name__)

# token失效
TOKEN_EXPIRED_CODES = {11241, 11242, 11243, 11244}

FILE_TYPE_IMAGE = 1


class QQBotClient(VendorHttpClient):
    """QQ 官方机器人 API 客户端"""

    platform = "qqbot"

    def api_base_url(self, account: ResolvedAccount) -> str:
        if account.config.sandbox:
            return self.settings.QQBOT_SANDBOX_API_BASE.rstrip("/")
        return self.settings.QQBOT_API_BASE.rstrip("/")

    def token_key(self, account: ResolvedAccount) -> str:
        return self.token_cache.cache_key(self.platform, account.config.app_id)

    def _check_response(self, data: Dict[str, Any]) -> None:
        code = data.get("code")
        if code and "message" in data:
            raise VendorApiError(self.platform, code, data.get("message") or "Unknown error")

    def get_access_token(self, account: ResolvedAccount) -> str:
        return self.token_cache.get_token(self.token_key(account), lambda: self._fetch_token(account))

    def _fetch_token(self, account: ResolvedAccount) -> Tuple[str, int]:
        config = account.config
        data = self._request(
            "POST",
            self.settings.QQBOT_TOKEN_URL,
            json={"appId": config.app_id, "clientSecret": config.client_secret},
        )
        if not data.get("access_token"):
            raise VendorApiError(self.platform, data.get("code", -1), data.get("message", "No access_token"))
        # expires_in 返回的是字符串
        return data["access_token"], int(data.get("expires_in") or 7200)

    def _post(self, account: ResolvedAccount, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        token = self.get_access_token(account)
        try:
            return self._request(
                "POST",
                f"{self.api_base_url(account)}{path}",
                headers={
                    "Authorization": f"QQBot {token}",
                    "X-Union-Appid": account.config.app_id,
                },
                json=body,
            )
        except VendorApiError as e:
            if e.code in TOKEN_EXPIRED_CODES or e.code == 401:
                self.token_cache.invalidate(self.token_key(account))
            raise

    def _guild_body(self, content: str, msg_id: Optional[str], image: Optional[str]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": content}
        if image:
            body["image"] = image
        if msg_id:
            body["msg_id"] = msg_id
        return body

    def send_channel_message(
        self,
        account: ResolvedAccount,
        channel_id: str,
        content: str,
        msg_id: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Dict[str, Any]:
        """频道(子频道)消息"""
        return self._post(account, f"/channels/{channel_id}/messages", self._guild_body(content, msg_id, image))

    def create_direct_session(
        self, account: ResolvedAccount, recipient_id: str, source_guild_id: str
    ) -> Dict[str, Any]:
        """
        创建频道私信会话

        Args:
            recipient_id: 接收者用户ID
            source_guild_id: 用户所在的源频道ID

        Returns:
            {"guild_id": 私信会话频道ID, "channel_id": ..., "create_time": ...}
        """
        data = self._post(
            account,
            "/users/@me/dms",
            {"recipient_id": recipient_id, "source_guild_id": source_guild_id},
        )
        if not data.get("guild_id"):
            raise VendorApiError(self.platform, data.get("code", -1), "DM session response has no guild_id")
        return data

    def send_direct_message(
        self,
        account: ResolvedAccount,
        guild_id: str,
        content: str,
        msg_id: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Dict[str, Any]:
        """频道私信(guild_id为私信会话的guild_id)"""
        return self._post(account, f"/dms/{guild_id}/messages", self._guild_body(content, msg_id, image))

    def send_group_message(self, account: ResolvedAccount, group_openid: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._post(account, f"/v2/groups/{group_openid}/messages", body)

    def send_c2c_message(self, account: ResolvedAccount, user_openid: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._post(account, f"/v2/users/{user_openid}/messages", body)

    def upload_media(self, account: ResolvedAccount, scope: str, openid: str, url: str,
                     file_type: int = FILE_TYPE_IMAGE) -> str:
        """
        上传富媒体

        Args:
            scope: "groups" 或 "users"
            openid: 群/用户openid
            url: 媒体URL

        Returns:
            file_info
        """
        data = self._post(
            account,
            f"/v2/{scope}/{openid}/files",
            {"file_type": file_type, "url": url, "srv_send_msg": False},
        )
        file_info = data.get("file_info")
        if not file_info:
            raise VendorApiError(self.platform, data.get("code", -1), "Upload response has no file_info")
        return file_info
