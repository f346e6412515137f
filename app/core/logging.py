from __future__ import annotations

import logging
from typing import Any, MutableMapping, Tuple

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, datefmt="%H:%M:%S")


class JobLogAdapter(logging.LoggerAdapter):
    """Prefix every record with ``[job_id]`` and expose it as ``record.job_id``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        job_id = self.extra["job_id"]
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("job_id", job_id)
        kwargs["extra"] = extra
        return f"[{job_id}] {msg}", kwargs


def job_logger(logger: logging.Logger, job_id: str) -> JobLogAdapter:
    return JobLogAdapter(logger, {"job_id": job_id})
