"""Store 公共辅助函数 -- 时间戳与 JSON 列编解码"""

import json
from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(tz=UTC)


def to_iso(value: datetime) -> str:
    """统一序列化为带微秒的 ISO 字符串，保证字典序即时间序"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    """解析 ISO 时间，缺失时区按 UTC 处理"""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def load_json(value: str | None, default: Any = None) -> Any:
    if not value:
        return default
    return json.loads(value)


def glob_prefix(value: str) -> str:
    """构造大小写敏感的 GLOB 前缀模式，通配符 * ? [ 按字面匹配"""
    escaped = "".join(f"[{ch}]" if ch in "*?[" else ch for ch in value)
    return escaped + "*"
