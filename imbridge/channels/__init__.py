"""
渠道适配器模块

提供统一的消息接口,支持多种IM平台:
- 企业微信 (wecom)
- 钉钉 (dingtalk)
- 飞书 / Lark (feishu)
- QQ / OneBot (qq)
- QQ 官方机器人 (qqbot)

使用方式:
    from imbridge.channels import ChannelRegistry

    registry = ChannelRegistry()
    plugin = registry.get_channel_plugin("wecom")

    # 发送
    plugin.send_text(cfg, "user:zhangsan", "您好!")

    # 回调
    handler = plugin.create_webhook_handler(cfg, on_message=handle_message)
    response = handler(request)   # None 表示路径不匹配

平台模块按需导入,导入本包不会加载任何平台代码。
"""

from imbridge.channels.base import (
    # 数据模型
    BaseAccountConfig,
    CanonicalMessage,
    ChannelDescriptor,
    ChannelEvent,
    Mention,
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,

    # 枚举类型
    ChatType,
    MessageType,
    TargetKind,
)
from imbridge.channels.registry import (
    CHANNEL_ORDER,
    ChannelRegistry,
    get_channel_descriptor,
    list_channel_descriptors,
    normalize_channel_id,
)
from imbridge.channels.token_cache import AccessToken, TokenCacheService
from imbridge.channels.webhook import WebhookRequest, WebhookResponse

__all__ = [
    # 数据模型
    "BaseAccountConfig",
    "CanonicalMessage",
    "ChannelDescriptor",
    "ChannelEvent",
    "Mention",
    "OutboundPayload",
    "OutboundTarget",
    "ResolvedAccount",
    "SendResult",

    # 枚举类型
    "ChatType",
    "MessageType",
    "TargetKind",

    # 注册表
    "CHANNEL_ORDER",
    "ChannelRegistry",
    "get_channel_descriptor",
    "list_channel_descriptors",
    "normalize_channel_id",

    # Token缓存
    "AccessToken",
    "TokenCacheService",

    # 回调
    "WebhookRequest",
    "WebhookResponse",
]
