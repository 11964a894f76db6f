"""File upload endpoint for audio analysis."""

import logging
import os
import tempfile

from fastapi import APIRouter, UploadFile, File, HTTPException

from loopmeter.api.schemas import AnalysisResponse
from loopmeter.analysis.engine import AnalysisEngine
from loopmeter.config import settings
from loopmeter.exceptions import AudioLoadError

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aac", ".aiff"}


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(file: UploadFile = File(...)):
    """Analyze an uploaded audio file for tempo, beats and loop points."""
    suffix = ""
    if file.filename and "." in file.filename:
        suffix = "." + file.filename.rsplit(".", 1)[-1].lower()
        if suffix not in ALLOWED_EXTENSIONS:
            raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    content = await file.read()
    if not content:
        raise HTTPException(400, "Empty upload")
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    # librosa needs a file path for some formats
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(content)
        tmp_path = tmp.name

    try:
        engine = AnalysisEngine()
        progress = engine.progress_channel()
        result = engine.analyze_file(tmp_path, progress=progress)
        logger.debug(f"Stages completed: {[e.stage for e in progress.drain()]}")
        return AnalysisResponse(**result.to_dict())
    except AudioLoadError as e:
        raise HTTPException(400, str(e))
    except Exception:
        logger.exception(f"Analysis of {file.filename!r} failed")
        raise HTTPException(500, "Analysis failed")
    finally:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
