"""
渠道账号配置来源

宿主应用的配置结构:
    {
        "channels": {
            "wecom": {"corpId": "...", "secret": "...", "accounts": {"sales": {...}}},
            "feishu": {...}
        }
    }

配置可能在运行期间被修改,每次调用时重新取值(不缓存解析结果)。
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from imbridge.errors import ConfigurationError

logger = logging.getLogger(__name__)

ConfigSource = Union[Mapping[str, Any], Callable[[], Mapping[str, Any]]]


def load_config(source: Optional[ConfigSource]) -> Mapping[str, Any]:
    """取出当前配置(支持直接传dict或无参回调)"""
    if source is None:
        return {}
    if callable(source):
        return source() or {}
    return source


def channel_section(config: Optional[Mapping[str, Any]], channel_id: str) -> Mapping[str, Any]:
    """获取某个渠道的配置段,不存在时返回空dict"""
    if not config:
        return {}
    channels = config.get("channels")
    if not isinstance(channels, Mapping):
        return {}
    section = channels.get(channel_id)
    return section if isinstance(section, Mapping) else {}


class JsonChannelConfigProvider:
    """
    JSON配置文件读取器

    作为ConfigSource使用: 每次调用检查文件mtime,变化后重新加载。
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        self._data: Dict[str, Any] = {}

    def __call__(self) -> Dict[str, Any]:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            logger.warning(f"Channel config file not found: {self.path}")
            return {}

        with self._lock:
            if mtime != self._mtime:
                self._data = self._read()
                self._mtime = mtime
                logger.info(f"Loaded channel config from {self.path}")
            return self._data

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as e:
            raise ConfigurationError(f"Invalid channel config {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Channel config {self.path} must be a JSON object")
        return data
