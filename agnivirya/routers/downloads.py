"""
Descarga del eBook en PDF (inglés o hindi).
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from ..config import get_settings

logger = logging.getLogger(__name__)
router = APIRouter(tags=["downloads"])

PDF_FILES = {
    "english": "English.pdf",
    "hindi": "Hindi.pdf",
}


@router.get("/download")
async def download_ebook(language: Optional[str] = None):
    language = (language or "").strip().lower()
    if language not in PDF_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid language parameter. Please specify language as "english" or "hindi"',
        )

    file_name = PDF_FILES[language]
    file_path = get_settings().assets_dir / file_name
    if not file_path.is_file():
        logger.error(f"❌ PDF no encontrado: {file_path}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{language} PDF not available",
        )

    logger.info(f"✅ Descarga de PDF iniciada: {file_name} ({language})")
    return FileResponse(
        file_path,
        media_type="application/pdf",
        filename=file_name,
        headers={"Cache-Control": "no-cache"},
    )
