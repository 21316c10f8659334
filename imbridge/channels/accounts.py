"""
多账号配置解析

渠道配置段的结构:
    {
        "corpId": "...", "secret": "...",          # 顶层字段 = default账号
        "accounts": {"sales": {...}, "ops": {...}}  # 可选的命名账号
    }

解析规则:
1. 账号ID统一 trim + 小写,空值视为 "default"
2. 命名账号命中 -> 返回该账号
3. 未命中 -> 回退到顶层字段,account_id 固定报告为 "default"
4. 永不抛异常,凭证是否齐全由调用方通过 is_configured 判断
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import ValidationError

from imbridge.channels.base import BaseAccountConfig, ResolvedAccount

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_ID = "default"

ConfigT = TypeVar("ConfigT", bound=BaseAccountConfig)


def normalize_account_id(account_id: Optional[str]) -> str:
    normalized = (account_id or "").strip().lower()
    return normalized or DEFAULT_ACCOUNT_ID


def _named_accounts(section: Optional[Mapping[str, Any]]) -> Dict[str, Mapping[str, Any]]:
    if not isinstance(section, Mapping):
        return {}
    accounts = section.get("accounts")
    if not isinstance(accounts, Mapping):
        return {}
    return {
        str(key): value
        for key, value in accounts.items()
        if isinstance(value, Mapping) and str(key).strip()
    }


def list_account_ids(section: Optional[Mapping[str, Any]]) -> List[str]:
    """命名账号ID(排序),没有命名账号时返回 ["default"]"""
    named = _named_accounts(section)
    if named:
        return sorted(named)
    return [DEFAULT_ACCOUNT_ID]


def build_account_config(config_cls: Type[ConfigT], fields: Mapping[str, Any]) -> ConfigT:
    """字段类型不合法时记录警告并返回空配置"""
    try:
        return config_cls.model_validate(dict(fields))
    except ValidationError as e:
        logger.warning(f"Invalid {config_cls.__name__} fields ({e.error_count()} errors), using empty config")
        return config_cls()


def resolve_account(
    section: Optional[Mapping[str, Any]],
    account_id: Optional[str],
    config_cls: Type[BaseAccountConfig],
) -> ResolvedAccount:
    """
    解析租户凭证

    Args:
        section: 渠道配置段(channels.<id>)
        account_id: 请求的账号ID,可为空
        config_cls: 平台凭证模型

    Returns:
        ResolvedAccount
    """
    normalized = normalize_account_id(account_id)

    for key, fields in _named_accounts(section).items():
        if normalize_account_id(key) == normalized:
            return ResolvedAccount(
                account_id=normalized,
                config=build_account_config(config_cls, fields),
            )

    if normalized != DEFAULT_ACCOUNT_ID:
        logger.debug(f"Account '{normalized}' not found, falling back to default")

    top_level = {}
    if isinstance(section, Mapping):
        top_level = {k: v for k, v in section.items() if k != "accounts"}
    return ResolvedAccount(
        account_id=DEFAULT_ACCOUNT_ID,
        config=build_account_config(config_cls, top_level),
    )


def is_configured(account: ResolvedAccount) -> bool:
    """出站所需凭证全部非空"""
    return account.config.is_configured()
