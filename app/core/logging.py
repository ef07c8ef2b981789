"""
File: app/core/logging.py
Description: 全局日志配置模块 (Loguru)

本模块负责：
1. 替代 Python 标准库 logging，接管 Uvicorn/FastAPI 日志
2. 配置 Loguru 的输出格式（开发环境文本，生产环境 JSON）
3. 设置日志轮转 (Rotation) 和保留 (Retention) 策略
4. 文本格式追加认证上下文: request_id / user_id / session_id / provider
5. 全局 patcher 对 extra 字段脱敏 (邮箱、手机号、令牌、验证码)
6. 压低出站 HTTP 客户端日志级别 (其 URL 可能携带 API Key / OAuth code)

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-19 (auth context fields, PII redaction patcher)
"""

import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from app.core.config import settings
from app.utils.masking import mask_sensitive_data

# 出站请求日志会打印完整 URL (含 ipstack access_key、OAuth code 等)，仅保留告警
QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "sqlalchemy.engine")

# 文本格式中追加的上下文字段: (extra 键, 显示标签, 颜色)
CONTEXT_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("request_id", "req_id", "magenta"),
    ("client_ip", "ip", "green"),
    ("user_id", "user", "yellow"),
    ("session_id", "sid", "blue"),
    ("provider", "sso", "cyan"),
)


class InterceptHandler(logging.Handler):
    """标准库 logging -> Loguru (Uvicorn / SQLAlchemy / httpx)"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 跳过 logging 模块自身的栈帧，保证行号指向真实调用方
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def redact_extra(record: dict[str, Any]) -> None:
    """
    Loguru patcher: 输出前对 bind() 的字段做脱敏。
    调用方已脱敏的邮箱再次处理结果不变。
    """
    extra = record["extra"]
    if extra:
        extra.update(mask_sensitive_data(dict(extra)))


def format_record(record: dict[str, Any]) -> str:
    """文本格式：基础行 + 存在的认证上下文字段"""
    format_string = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    for key, label, color in CONTEXT_FIELDS:
        if record["extra"].get(key):
            format_string += f" | <{color}>{label}={{extra[{key}]}}</{color}>"

    return format_string + "\n{exception}"


def _sink_config(serialize: bool) -> dict[str, Any]:
    config: dict[str, Any] = {
        "level": settings.LOG_LEVEL,
        "enqueue": True,
        "backtrace": True,
        "diagnose": settings.LOG_DIAGNOSE,
    }
    if serialize:
        config["serialize"] = True
    else:
        config["format"] = format_record
    return config


def setup_logging() -> None:
    """
    初始化日志配置。
    由 main.py 的 lifespan 在启动时调用。
    """
    # 1. 拦截标准库日志
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.LOG_LEVEL)

    for name in list(logging.root.manager.loggerDict):
        if name.startswith(("uvicorn.", "fastapi.")):
            logging.getLogger(name).handlers = []
            logging.getLogger(name).propagate = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # 2. 重建 Loguru sinks
    logger.remove()
    logger.configure(patcher=redact_extra)

    console_config = _sink_config(settings.LOG_JSON_FORMAT)
    if not settings.LOG_JSON_FORMAT:
        console_config["colorize"] = True
    logger.add(sys.stdout, **console_config)

    # 文件输出 (按配置启用，按小时轮转)
    if settings.LOG_FILE_ENABLED:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_config = _sink_config(settings.LOG_JSON_FORMAT)
        file_config.update(
            {
                "rotation": settings.LOG_ROTATION,
                "retention": settings.LOG_RETENTION,
                "compression": settings.LOG_COMPRESSION,
            }
        )
        logger.add(str(log_dir / "auth_{time:YYYY-MM-DD_HH}.log"), **file_config)

    logger.bind(environment=settings.ENVIRONMENT).info("Logging configured")
