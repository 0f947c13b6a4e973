"""
Detection request helpers: upload reading, provider selection parsing,
and memory usage logging.
"""

import logging
import os
from typing import List, Optional

import psutil
from fastapi import HTTPException, UploadFile

from songcheck.core.file_validator import validate_audio
from songcheck.schemas.detection import DetectionRequest

logger = logging.getLogger(__name__)


def log_memory(stage: str) -> None:
    """Log current process and system memory usage. Only runs when DEBUG logging is active."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    process = psutil.Process(os.getpid())
    mem_info = process.memory_info()
    sys_mem = psutil.virtual_memory()
    logger.debug(
        f"[MEMORY] {stage} | "
        f"PID: {os.getpid()} | "
        f"Process RSS: {mem_info.rss / 1024 / 1024:.2f} MB | "
        f"System Available: {sys_mem.available / 1024 / 1024:.2f} MB / {sys_mem.total / 1024 / 1024:.2f} MB"
    )


def parse_provider_selection(raw: Optional[str]) -> Optional[List[str]]:
    """'aiornot, ircam' -> ['aiornot', 'ircam']; empty or missing -> None (all configured)."""
    if raw is None:
        return None
    names = [part.strip().lower() for part in raw.split(",")]
    names = [n for n in names if n]
    return names or None


async def read_upload(upload: UploadFile) -> DetectionRequest:
    """Read an UploadFile into an immutable DetectionRequest after validating it."""
    if not isinstance(upload, UploadFile):
        raise HTTPException(status_code=400, detail="Invalid file upload format")

    filename = os.path.basename(upload.filename or "") or "upload"
    content = await upload.read()
    content_type = validate_audio(filename, content)
    return DetectionRequest(content=content, filename=filename, content_type=content_type)
