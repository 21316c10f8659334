"""
渠道抽象层数据模型

定义跨平台统一的数据结构,屏蔽不同IM平台的报文差异:
- ChannelDescriptor: 平台静态描述(id/别名/能力/分片上限)
- BaseAccountConfig: 单个租户的凭证(各平台子类化)
- ResolvedAccount: 账号解析结果
- CanonicalMessage / ChannelEvent: 入站消息/事件
- OutboundTarget / OutboundPayload / SendResult: 出站发送
"""

import logging
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class ChatType(str, Enum):
    """会话类型枚举"""
    DIRECT = "direct"
    GROUP = "group"


class TargetKind(str, Enum):
    """出站目标类型"""
    USER = "user"
    GROUP = "group"
    CHANNEL = "channel"
    ROOM = "room"


class MessageType(str, Enum):
    """出站消息类型"""
    TEXT = "text"
    MARKDOWN = "markdown"
    IMAGE = "image"
    FILE = "file"
    CARD = "card"


class ChannelDescriptor(BaseModel):
    """平台静态描述,进程启动时创建,之后只读"""
    id: str = Field(..., description="渠道ID(如wecom)")
    label: str = Field(..., description="展示名称")
    aliases: FrozenSet[str] = Field(default_factory=frozenset, description="别名集合(小写)")
    chat_types: Tuple[ChatType, ...] = Field((ChatType.DIRECT, ChatType.GROUP), description="支持的会话类型")
    supports_media: bool = Field(True, description="是否支持媒体消息")
    text_chunk_limit: int = Field(..., description="单条文本长度上限,由调用方负责分片")
    blurb: str = Field("", description="简介")

    model_config = ConfigDict(frozen=True)


class BaseAccountConfig(BaseModel):
    """
    租户凭证基类

    字段名使用平台原始的camelCase(通过alias),便于直接读取宿主的配置文件。
    子类通过REQUIRED_FIELDS声明出站所需字段,WEBHOOK_FIELDS声明回调所需字段。
    """
    enabled: bool = True
    name: Optional[str] = None

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ()
    WEBHOOK_FIELDS: ClassVar[Tuple[str, ...]] = ()

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_scalars(cls, data: Any) -> Any:
        # 配置文件里agentId等经常写成数字
        if not isinstance(data, Mapping):
            return data
        cleaned = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            elif isinstance(value, str):
                value = value.strip()
            cleaned[key] = value
        return cleaned

    def missing_fields(self, fields: Tuple[str, ...]) -> List[str]:
        """返回为空的字段(以配置文件中的名字表示)"""
        missing = []
        for field_name in fields:
            if not getattr(self, field_name, None):
                info = type(self).model_fields.get(field_name)
                missing.append(info.alias if info is not None and info.alias else field_name)
        return missing

    def missing_required(self) -> List[str]:
        """出站缺失的凭证;凭证存在"二选一"关系的平台重写此方法"""
        return self.missing_fields(self.REQUIRED_FIELDS)

    def missing_webhook(self) -> List[str]:
        return self.missing_fields(self.WEBHOOK_FIELDS)

    def is_configured(self) -> bool:
        """出站所需凭证是否齐全"""
        return not self.missing_required()

    def is_webhook_configured(self) -> bool:
        """回调所需凭证是否齐全"""
        return not self.missing_webhook()


class ResolvedAccount(BaseModel):
    """账号解析结果,每次解析重新生成"""
    account_id: str
    config: BaseAccountConfig

    model_config = ConfigDict(frozen=True)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def name(self) -> Optional[str]:
        return self.config.name


class Mention(BaseModel):
    """@提及"""
    id: str
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CanonicalMessage(BaseModel):
    """统一的跨平台入站消息,创建后不可修改"""
    platform: str = Field(..., description="渠道ID")
    account_id: str = Field("default", description="租户账号ID")
    message_id: str = Field(..., description="平台消息ID")
    sender_id: str = Field(..., description="发送者ID")
    sender_name: Optional[str] = Field(None, description="发送者昵称")
    chat_id: str = Field(..., description="会话ID(单聊时为发送者ID)")
    chat_type: ChatType = Field(ChatType.DIRECT, description="会话类型")
    content_text: str = Field("", description="文本内容")
    raw_content_type: str = Field("text", description="平台原始消息类型")
    timestamp: int = Field(0, description="消息时间戳(毫秒)")
    mentions: List[Mention] = Field(default_factory=list, description="@列表")
    reply_to_id: Optional[str] = Field(None, description="被回复的消息ID")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="平台额外信息(如钉钉sessionWebhook)")
    raw_data: Dict[str, Any] = Field(default_factory=dict, description="原始消息数据")

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    @property
    def is_group(self) -> bool:
        return self.chat_type == ChatType.GROUP


class ChannelEvent(BaseModel):
    """非消息类事件(入群、退群、菜单点击等)"""
    platform: str
    account_id: str = "default"
    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class OutboundTarget(BaseModel):
    """解析后的发送目标"""
    kind: TargetKind
    id: str
    reply_to_message_id: Optional[str] = None
    scope: Optional[str] = Field(None, description="平台内的接收者类型(如party/tag/open_id/webhook)")

    model_config = ConfigDict(frozen=True, use_enum_values=True)


class OutboundPayload(BaseModel):
    """sendPayload的载荷"""
    text: str = ""
    media_url: Optional[str] = None
    msg_type: Optional[MessageType] = Field(None, description="为空时按内容推断")
    reply_to_id: Optional[str] = None
    card: Optional[Dict[str, Any]] = Field(None, description="交互卡片JSON(飞书interactive)")
    extra: Dict[str, Any] = Field(default_factory=dict, description="平台特定字段,合并进请求体")


class SendResult(BaseModel):
    """出站发送结果"""
    channel: str
    message_id: str = Field(..., description="带平台前缀的消息ID")
    chat_id: str = Field(..., description="原始目标字符串")
    raw_data: Dict[str, Any] = Field(default_factory=dict)
