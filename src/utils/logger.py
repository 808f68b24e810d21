import os
import sys
from collections.abc import Iterable

from loguru import logger

REDACTED = "***"


def setup_logger(
    *,
    json_logs: bool = False,
    level: str = "INFO",
    log_dir: str = "logs",
    redact: Iterable[str] = (),
) -> None:
    """Configure loguru for the reclaim service.

    Console level controlled by LOG_LEVEL env (default: INFO).
    File always captures DEBUG so a failed cycle can be reconstructed
    next to the JSON ledger. Any string in ``redact`` (the operator key)
    is masked in every message before it reaches a sink.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    secrets = [s for s in redact if s]
    logger.remove()

    def _mask(record) -> None:
        for secret in secrets:
            if secret in record["message"]:
                record["message"] = record["message"].replace(secret, REDACTED)

    logger.configure(patcher=_mask)

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    logger.add(
        f"{log_dir}/recapture_{{time:YYYY-MM-DD}}.log",
        rotation="50 MB",
        retention="14 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
    )
