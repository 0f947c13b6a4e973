"""
Audio upload validation and log sanitization utilities.

Checks extension and size, then opens the bytes with libsndfile (via
soundfile) and decodes the first block of frames before anything is sent to
a paid provider. The container libsndfile reports must match the extension.
"""

import io
import os
import re
import logging

import soundfile as sf
from fastapi import HTTPException

from songcheck.config import settings

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".aiff": "audio/aiff",
    ".aif": "audio/aiff",
}

# Extension -> container names as reported by soundfile's `format`
_EXPECTED_FORMATS = {
    ".mp3": {"MP3"},
    ".wav": {"WAV", "WAVEX", "RF64"},
    ".flac": {"FLAC"},
    ".ogg": {"OGG"},
    ".aiff": {"AIFF"},
    ".aif": {"AIFF"},
}

# Frames decoded to prove the stream is real audio
_PROBE_FRAMES = 1024


def validate_audio(filename: str, content: bytes) -> str:
    """Validate an upload and return the content type to forward to providers."""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in AUDIO_EXTENSIONS:
        raise HTTPException(status_code=415, detail="Unsupported file format.")

    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    if len(content) > settings.max_audio_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Audio too large. Max {settings.max_audio_upload_mb}MB allowed."
        )

    try:
        with sf.SoundFile(io.BytesIO(content)) as audio:
            if audio.format not in _EXPECTED_FORMATS[ext]:
                raise ValueError(f"Format mismatch: {audio.format}")
            frames = audio.read(frames=_PROBE_FRAMES)
            if len(frames) == 0:
                raise ValueError("Could not read audio frames")
    except Exception as e:
        logger.error(f"Corrupted or mislabelled upload ({sanitize_log_message(filename)}): {e}")
        raise HTTPException(status_code=400, detail="Invalid file content or format mismatch.")

    return AUDIO_EXTENSIONS[ext]


def sanitize_log_message(message: str) -> str:
    """Strip sensitive file paths from log messages."""
    msg = re.sub(r'\/[^\s]+\/tmp[a-zA-Z0-9_]+', '[TEMP_FILE]', message)
    msg = re.sub(r'\/[^\s]+\/([^\/\s]+)', r'.../\1', msg)
    return msg
