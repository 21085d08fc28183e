"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、worker 心跳间隔、stale 判定阈值、读模型行数上限等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("MISSION_CONTROL_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "MISSION_CONTROL_DB_PATH",
        str(_get_base_dir() / "mission-control.sqlite"),
    )


def get_stale_worker_seconds() -> int:
    """worker 心跳超过该秒数即视为 stale（仅读时判定，不落库）"""
    return int(os.environ.get("MISSION_CONTROL_STALE_WORKER_SECONDS", "120"))


def get_heartbeat_interval() -> float:
    """worker 心跳循环间隔（秒）"""
    return float(os.environ.get("MISSION_CONTROL_HEARTBEAT_INTERVAL", "15"))


def get_activity_window_days() -> int:
    """活跃度热力图的滚动窗口（天）"""
    return int(os.environ.get("MISSION_CONTROL_ACTIVITY_WINDOW_DAYS", "90"))


def get_list_limit() -> int:
    """读模型列表默认返回行数上限"""
    return int(os.environ.get("MISSION_CONTROL_LIST_LIMIT", "200"))


def get_log_format() -> str:
    """日志渲染模式：dev（控制台）或 json"""
    return os.environ.get("MISSION_CONTROL_LOG_FORMAT", "dev").lower()


def get_log_level(default: str = "INFO") -> str:
    """日志级别名；gateway 默认 INFO，mcctl 传入 WARNING"""
    return os.environ.get("MISSION_CONTROL_LOG_LEVEL", default).upper()


# 展示用短 ID 长度（错误信息中最多暴露这么长的 ID 前缀）
SHORT_ID_LENGTH: int = 8

# 任务标题最大长度
TITLE_MAX_LENGTH: int = 200

# 单任务事件查询默认条数
EVENT_LIST_LIMIT: int = 100
