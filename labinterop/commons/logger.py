import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

QC_CHANNEL = "qc"


def _is_qc(record) -> bool:
    return record["extra"].get("channel") == QC_CHANNEL


def setup_logging(root: str, level: str = "INFO", qc_audit: bool = True):
    """Log diario en <root>/YYYY/MM/DD/app.log + consola.

    Con ``qc_audit`` las corridas de control (``logger.bind(channel="qc")``)
    van además a qc.log en la misma carpeta, para auditoría del laboratorio.
    """
    logdir = Path(root) / datetime.now().strftime("%Y/%m/%d")
    logdir.mkdir(parents=True, exist_ok=True)
    logger.remove()
    logger.add(
        str(logdir / "app.log"),
        rotation="00:00",
        retention="14 days",
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,  # no volcar variables: hay datos de pacientes
    )
    if qc_audit:
        logger.add(
            str(logdir / "qc.log"),
            rotation="00:00",
            retention="90 days",
            level="INFO",
            enqueue=True,
            filter=_is_qc,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {message}",
        )
    logger.add(sys.stderr, level=level)
    return logger


def qc_logger():
    return logger.bind(channel=QC_CHANNEL)
