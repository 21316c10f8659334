"""
企业微信渠道模块

使用方式:
    from imbridge.channels.wecom import WeComPlugin

    plugin = WeComPlugin()
    account = plugin.resolve_account(cfg, "sales")
    if plugin.is_configured(account):
        plugin.send_text(cfg, "party:2", "您好!", account_id="sales")
"""

from imbridge.channels.wecom.client import WeComClient
from imbridge.channels.wecom.outbound import WeComOutbound
from imbridge.channels.wecom.plugin import WeComAccountConfig, WeComPlugin
from imbridge.channels.wecom.webhook import WeComWebhookHandler

__all__ = [
    "WeComAccountConfig",
    "WeComClient",
    "WeComOutbound",
    "WeComPlugin",
    "WeComWebhookHandler",
]
