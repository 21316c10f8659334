"""
钉钉 API 客户端

负责:
1. access_token获取(oapi gettoken)
2. 机器人Webhook发送(自定义机器人加签 / sessionWebhook)
3. 企业内部机器人群消息(api.dingtalk.com v1.0)
4. 工作通知(asyncsend_v2)
5. 媒体文件上传(media/upload,工作通知与群文件消息需要media_id)
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote_plus

from imbridge.channels.base import ResolvedAccount
from imbridge.channels.http import MediaFile, VendorHttpClient
from imbridge.errors import VendorApiError
from imbridge.utils.signing import dingtalk_robot_sign

logger = logging.getLogger(__name__)

TOKEN_EXPIRED_CODES = {40014, 42001, 88}


def sign_webhook_url(url: str, secret: str, timestamp: Optional[int] = None) -> str:
    """自定义机器人加签: 追加 &timestamp=&sign="""
    timestamp = timestamp if timestamp is not None else int(time.time() * 1000)
    sign = dingtalk_robot_sign(str(timestamp), secret)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}timestamp={timestamp}&sign={quote_plus(sign)}"


class DingTalkClient(VendorHttpClient):
    """钉钉 API 客户端"""

    platform = "dingtalk"

    @property
    def oapi_base_url(self) -> str:
        return self.settings.DINGTALK_OAPI_BASE.rstrip("/")

    @property
    def api_base_url(self) -> str:
        return self.settings.DINGTALK_API_BASE.rstrip("/")

    def token_key(self, account: ResolvedAccount) -> str:
        return self.token_cache.cache_key(self.platform, account.config.app_key)

    def _check_response(self, data: Dict[str, Any]) -> None:
        errcode = data.get("errcode", 0)
        if errcode:
            raise VendorApiError(self.platform, errcode, data.get("errmsg", "Unknown error"))

    def get_access_token(self, account: ResolvedAccount) -> str:
        return self.token_cache.get_token(self.token_key(account), lambda: self._fetch_token(account))

    def _fetch_token(self, account: ResolvedAccount) -> Tuple[str, int]:
        config = account.config
        data = self._request(
            "GET",
            f"{self.oapi_base_url}/gettoken",
            params={"appkey": config.app_key, "appsecret": config.app_secret},
        )
        return data["access_token"], int(data.get("expires_in", 7200))

    def _with_token(self, account: ResolvedAccount, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            return self._request(method, url, **kwargs)
        except VendorApiError as e:
            if e.code in TOKEN_EXPIRED_CODES:
                self.token_cache.invalidate(self.token_key(account))
            raise

    def send_robot_webhook(self, url: str, message: Dict[str, Any], secret: Optional[str] = None) -> Dict[str, Any]:
        """
        通过机器人Webhook发送

        Args:
            url: webhook地址(自定义机器人或sessionWebhook)
            message: {"msgtype": ..., ...}
            secret: 加签密钥(自定义机器人开启加签时)
        """
        if secret:
            url = sign_webhook_url(url, secret)
        return self._request("POST", url, json=message)

    def send_group_message(
        self,
        account: ResolvedAccount,
        open_conversation_id: str,
        msg_key: str,
        msg_param: Dict[str, Any],
    ) -> Dict[str, Any]:
        """企业内部机器人发送群消息,返回processQueryKey"""
        config = account.config
        token = self.get_access_token(account)
        return self._with_token(
            account,
            "POST",
            f"{self.api_base_url}/v1.0/robot/groupMessages/send",
            headers={"x-acs-dingtalk-access-token": token},
            json={
                "robotCode": config.robot_code or config.app_key,
                "openConversationId": open_conversation_id,
                "msgKey": msg_key,
                "msgParam": json.dumps(msg_param, ensure_ascii=False),
            },
        )

    def send_work_notice(self, account: ResolvedAccount, userid_list: str, msg: Dict[str, Any]) -> Dict[str, Any]:
        """工作通知,返回task_id"""
        config = account.config
        token = self.get_access_token(account)
        agent_id = config.agent_id
        return self._with_token(
            account,
            "POST",
            f"{self.oapi_base_url}/topapi/message/corpconversation/asyncsend_v2",
            params={"access_token": token},
            json={
                "agent_id": int(agent_id) if agent_id.isdigit() else agent_id,
                "userid_list": userid_list,
                "msg": msg,
            },
        )

    def upload_media(self, account: ResolvedAccount, media_type: str, media: MediaFile) -> str:
        """
        上传媒体文件

        Args:
            media_type: image / voice / file
            media: 已下载的媒体文件

        Returns:
            media_id
        """
        token = self.get_access_token(account)
        data = self._with_token(
            account,
            "POST",
            f"{self.oapi_base_url}/media/upload",
            params={"access_token": token, "type": media_type},
            files={"media": (media.filename, media.content, media.content_type)},
        )
        logger.info(f"Uploaded dingtalk {media_type}: {media.filename}")
        return data["media_id"]
