"""
渠道注册表

- 轻量部分: 渠道描述、别名表、ID归一化,不导入任何平台模块
- 插件部分: ChannelRegistry 按需导入平台插件,并注入共享的TokenCacheService
"""

import importlib
import logging
import threading
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Type

from imbridge.channels.base import ChannelDescriptor, ChatType
from imbridge.channels.token_cache import TokenCacheService
from imbridge.config.settings import Settings, get_settings

if TYPE_CHECKING:
    from imbridge.channels.plugin import ChannelPlugin

logger = logging.getLogger(__name__)

CHANNEL_ORDER = ("wecom", "dingtalk", "feishu", "qq", "qqbot")

CHANNEL_DESCRIPTORS: Dict[str, ChannelDescriptor] = {
    "wecom": ChannelDescriptor(
        id="wecom",
        label="企业微信",
        aliases=frozenset({"wechat-work", "wxwork", "wechat"}),
        text_chunk_limit=2048,
        blurb="企业微信自建应用,回调 AES 加密",
    ),
    "dingtalk": ChannelDescriptor(
        id="dingtalk",
        label="钉钉",
        aliases=frozenset({"ding"}),
        text_chunk_limit=4000,
        blurb="钉钉机器人 / 企业内部应用",
    ),
    "feishu": ChannelDescriptor(
        id="feishu",
        label="飞书",
        aliases=frozenset({"lark"}),
        text_chunk_limit=4000,
        blurb="飞书 / Lark 自建应用",
    ),
    "qq": ChannelDescriptor(
        id="qq",
        label="QQ (OneBot)",
        aliases=frozenset({"onebot", "cqhttp", "napcat"}),
        text_chunk_limit=4500,
        blurb="OneBot v11 协议实现(go-cqhttp / NapCat / Lagrange)",
    ),
    "qqbot": ChannelDescriptor(
        id="qqbot",
        label="QQ 官方机器人",
        aliases=frozenset({"qq-bot", "qqofficial"}),
        chat_types=(ChatType.DIRECT, ChatType.GROUP),
        text_chunk_limit=2000,
        blurb="QQ 开放平台机器人(频道/群/单聊)",
    ),
}

CHANNEL_ALIASES: Dict[str, str] = {
    alias: channel_id
    for channel_id, descriptor in CHANNEL_DESCRIPTORS.items()
    for alias in descriptor.aliases
}

PLUGIN_PATHS: Dict[str, str] = {
    "wecom": "imbridge.channels.wecom.plugin:WeComPlugin",
    "dingtalk": "imbridge.channels.dingtalk.plugin:DingTalkPlugin",
    "feishu": "imbridge.channels.feishu.plugin:FeishuPlugin",
    "qq": "imbridge.channels.qq.plugin:OneBotPlugin",
    "qqbot": "imbridge.channels.qqbot.plugin:QQBotPlugin",
}


def normalize_channel_id(raw: Optional[str]) -> Optional[str]:
    """ID或别名 -> 渠道ID(大小写不敏感),未知返回None"""
    key = (raw or "").strip().lower()
    if not key:
        return None
    if key in CHANNEL_DESCRIPTORS:
        return key
    return CHANNEL_ALIASES.get(key)


def get_channel_descriptor(raw: Optional[str]) -> Optional[ChannelDescriptor]:
    channel_id = normalize_channel_id(raw)
    return CHANNEL_DESCRIPTORS.get(channel_id) if channel_id else None


def list_channel_descriptors() -> List[ChannelDescriptor]:
    return [CHANNEL_DESCRIPTORS[channel_id] for channel_id in CHANNEL_ORDER]


def load_plugin_class(channel_id: str) -> Type["ChannelPlugin"]:
    """按路径导入插件类"""
    module_path, _, class_name = PLUGIN_PATHS[channel_id].partition(":")
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


class ChannelRegistry:
    """
    已启用渠道的插件注册表

    使用方式:
        registry = ChannelRegistry()
        plugin = registry.get_channel_plugin("lark")   # -> FeishuPlugin
        plugin.send_text(cfg, "oc_xxx", "您好!")
    """

    def __init__(
        self,
        token_cache: Optional[TokenCacheService] = None,
        settings: Optional[Settings] = None,
        channels: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            token_cache: 共享缓存,所有插件使用同一个实例
            settings: 配置
            channels: 启用的渠道(ID或别名),默认全部内置渠道
        """
        self.settings = settings or get_settings()
        self.token_cache = token_cache or TokenCacheService(refresh_margin=self.settings.TOKEN_REFRESH_MARGIN)
        self._lock = threading.Lock()
        self._plugins: Dict[str, "ChannelPlugin"] = {}
        self._extra: Dict[str, ChannelDescriptor] = {}

        active = []
        for raw in (channels if channels is not None else CHANNEL_ORDER):
            channel_id = normalize_channel_id(raw)
            if channel_id is None:
                logger.warning(f"Unknown channel ignored: {raw}")
            elif channel_id not in active:
                active.append(channel_id)
        self._active = active

    def register(self, plugin: "ChannelPlugin") -> None:
        """注册外部插件(或替换内置插件)"""
        with self._lock:
            self._plugins[plugin.id] = plugin
            if plugin.id not in CHANNEL_DESCRIPTORS:
                self._extra[plugin.id] = plugin.descriptor
            if plugin.id not in self._active:
                self._active.append(plugin.id)
        logger.info(f"Registered channel plugin: {plugin.id}")

    def normalize_any_channel_id(self, raw: Optional[str]) -> Optional[str]:
        """归一化ID,包含外部注册插件的别名;只在已启用的渠道中查找"""
        key = (raw or "").strip().lower()
        if not key:
            return None
        for channel_id, descriptor in self._extra.items():
            if key == channel_id or key in descriptor.aliases:
                return channel_id
        channel_id = normalize_channel_id(key)
        if channel_id in self._active:
            return channel_id
        return None

    def list_channels(self) -> List[ChannelDescriptor]:
        """已启用渠道,按声明顺序"""
        result = [CHANNEL_DESCRIPTORS[c] for c in CHANNEL_ORDER if c in self._active]
        result.extend(d for c, d in self._extra.items() if c in self._active)
        return result

    def get_channel_plugin(self, raw: Optional[str]) -> Optional["ChannelPlugin"]:
        """获取插件实例(首次使用时导入并创建)"""
        channel_id = self.normalize_any_channel_id(raw)
        if channel_id is None:
            return None

        with self._lock:
            plugin = self._plugins.get(channel_id)
            if plugin is None:
                plugin_cls = load_plugin_class(channel_id)
                plugin = plugin_cls(token_cache=self.token_cache, settings=self.settings)
                self._plugins[channel_id] = plugin
                logger.info(f"Loaded channel plugin: {channel_id}")
            return plugin

    def plugins(self) -> List["ChannelPlugin"]:
        return [self.get_channel_plugin(d.id) for d in self.list_channels()]
