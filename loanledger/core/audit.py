import logging
from pathlib import Path
from datetime import datetime

from loanledger.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_LOGS_DIR = Path(__file__).parent.parent.parent / "logs"


def _logs_dir() -> Path:
    return Path(settings.AUDIT_LOG_DIR) if settings.AUDIT_LOG_DIR else DEFAULT_LOGS_DIR


def _format_details(details) -> str:
    if not details:
        return ""
    if isinstance(details, dict):
        return " ".join(f"{key}={value}" for key, value in details.items())
    return str(details)


def write_audit_log(
    actor_ref,
    actor_role: str,
    action: str,
    entity_kind: str,
    entity_ref=None,
    details=None,
) -> None:
    """Append one audit record to the monthly audit file.

    Called after a ledger transaction has committed. Any failure here is
    logged and swallowed so it can never surface as an operation failure.
    """
    try:
        logs_dir = _logs_dir()
        logs_dir.mkdir(parents=True, exist_ok=True)
        month_str = datetime.now().strftime("%Y_%m")
        log_file = logs_dir / f"audit_{month_str}.log"
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        target = f"{entity_kind}:{entity_ref}" if entity_ref is not None else entity_kind
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(f"{ts} | {actor_role} | {actor_ref or '-'} | {action} | {target} | {_format_details(details)}\n")
    except Exception:
        logger.exception("Audit log write failed for %s on %s", action, entity_kind)
