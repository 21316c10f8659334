"""
飞书 API 客户端

负责:
1. tenant_access_token获取
2. 发送消息 / 回复消息(含interactive卡片)
3. 图片/文件上传(im/v1/images、im/v1/files)
"""

import logging
import os
from typing import Any, Dict, Tuple

from imbridge.channels.base import ResolvedAccount
from imbridge.channels.http import MediaFile, VendorHttpClient
from imbridge.errors import VendorApiError

logger = logging.getLogger(__name__)

# tenant_access_token无效/过期
TOKEN_EXPIRED_CODES = {99991663, 99991668}

# im/v1/files支持的file_type,其余按stream上传
FILE_TYPES = {
    ".opus": "opus",
    ".mp4": "mp4",
    ".pdf": "pdf",
    ".doc": "doc",
    ".docx": "doc",
    ".xls": "xls",
    ".xlsx": "xls",
    ".ppt": "ppt",
    ".pptx": "ppt",
}


def feishu_file_type(filename: str) -> str:
    return FILE_TYPES.get(os.path.splitext(filename or "")[1].lower(), "stream")


class FeishuClient(VendorHttpClient):
    """飞书 API 客户端"""

    platform = "feishu"

    def api_base_url(self, account: ResolvedAccount) -> str:
        if account.config.domain == "lark":
            return self.settings.LARK_API_BASE.rstrip("/")
        return self.settings.FEISHU_API_BASE.rstrip("/")

    def token_key(self, account: ResolvedAccount) -> str:
        return self.token_cache.cache_key(self.platform, account.config.app_id)

    def _check_response(self, data: Dict[str, Any]) -> None:
        code = data.get("code", 0)
        if code:
            raise VendorApiError(self.platform, code, data.get("msg", "Unknown error"))

    def get_access_token(self, account: ResolvedAccount) -> str:
        return self.token_cache.get_token(self.token_key(account), lambda: self._fetch_token(account))

    def _fetch_token(self, account: ResolvedAccount) -> Tuple[str, int]:
        config = account.config
        data = self._request(
            "POST",
            f"{self.api_base_url(account)}/auth/v3/tenant_access_token/internal",
            json={"app_id": config.app_id, "app_secret": config.app_secret},
        )
        return data["tenant_access_token"], int(data.get("expire", 7200))

    def _post(self, account: ResolvedAccount, path: str, **kwargs) -> Dict[str, Any]:
        token = self.get_access_token(account)
        try:
            return self._request(
                "POST",
                f"{self.api_base_url(account)}{path}",
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except VendorApiError as e:
            if e.code in TOKEN_EXPIRED_CODES:
                self.token_cache.invalidate(self.token_key(account))
            raise

    def send_message(
        self,
        account: ResolvedAccount,
        receive_id_type: str,
        receive_id: str,
        msg_type: str,
        content: str,
    ) -> Dict[str, Any]:
        """
        发送消息

        Args:
            receive_id_type: open_id / user_id / union_id / email / chat_id
            content: JSON字符串(如 '{"text": "hi"}')

        Returns:
            data字段(含message_id)
        """
        data = self._post(
            account,
            "/im/v1/messages",
            params={"receive_id_type": receive_id_type},
            json={"receive_id": receive_id, "msg_type": msg_type, "content": content},
        )
        return data.get("data") or {}

    def reply_message(self, account: ResolvedAccount, message_id: str, msg_type: str, content: str) -> Dict[str, Any]:
        """回复指定消息"""
        data = self._post(
            account,
            f"/im/v1/messages/{message_id}/reply",
            json={"msg_type": msg_type, "content": content},
        )
        return data.get("data") or {}

    def upload_image(self, account: ResolvedAccount, media: MediaFile, image_type: str = "message") -> str:
        """上传图片,返回image_key"""
        data = self._post(
            account,
            "/im/v1/images",
            data={"image_type": image_type},
            files={"image": (media.filename, media.content, media.content_type)},
        )
        return (data.get("data") or {})["image_key"]

    def upload_file(self, account: ResolvedAccount, media: MediaFile) -> str:
        """上传文件,file_type按扩展名推断,返回file_key"""
        data = self._post(
            account,
            "/im/v1/files",
            data={"file_type": feishu_file_type(media.filename), "file_name": media.filename},
            files={"file": (media.filename, media.content, media.content_type)},
        )
        logger.info(f"Uploaded feishu file: {media.filename}")
        return (data.get("data") or {})["file_key"]
