"""Structured logging setup.

構造化ログ（JSON）の初期化を一元化する。ストアやマイグレーションのイベントは
すべてここで設定した structlog ロガー経由で出力される。
"""

import logging

import structlog
from structlog import contextvars as structlog_contextvars

from .config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure structlog for application-wide logging.

    標準 logging を初期化し、structlog で ISO タイムスタンプと JSON 形式の
    出力を有効化する。level 未指定時は settings.log_level を使う。
    """
    # stdlib 側のプレフィックス（"INFO:root:" など）を付けないため、
    # フォーマットはメッセージのみ(%(message)s)に固定する。
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler()],
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog_contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger()
