"""
OneBot v11 HTTP API 客户端

适用于 go-cqhttp / NapCat / Lagrange 等实现,鉴权为静态 access_token(Bearer)。
"""

import logging
from typing import Any, Dict, Union

from imbridge.channels.base import ResolvedAccount
from imbridge.channels.http import VendorHttpClient
from imbridge.errors import VendorApiError

logger = logging.getLogger(__name__)


class OneBotClient(VendorHttpClient):
    """OneBot HTTP 客户端"""

    platform = "qq"

    def _check_response(self, data: Dict[str, Any]) -> None:
        # retcode 1 表示已提交异步处理
        retcode = data.get("retcode", 0)
        if data.get("status") == "failed" or retcode not in (0, 1):
            message = data.get("wording") or data.get("msg") or data.get("message") or "Unknown error"
            raise VendorApiError(self.platform, retcode, message)

    def call_action(self, account: ResolvedAccount, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        调用OneBot动作

        Returns:
            响应中的data字段
        """
        config = account.config
        headers = {}
        if config.access_token:
            headers["Authorization"] = f"Bearer {config.access_token}"

        data = self._request(
            "POST",
            f"{config.http_url.rstrip('/')}/{action}",
            headers=headers,
            json=params,
        )
        return data.get("data") or {}

    def send_private_msg(self, account: ResolvedAccount, user_id: Union[int, str], message: str) -> Dict[str, Any]:
        return self.call_action(
            account, "send_private_msg", {"user_id": user_id, "message": message, "auto_escape": False}
        )

    def send_group_msg(self, account: ResolvedAccount, group_id: Union[int, str], message: str) -> Dict[str, Any]:
        return self.call_action(
            account, "send_group_msg", {"group_id": group_id, "message": message, "auto_escape": False}
        )
