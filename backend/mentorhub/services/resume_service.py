import io
import logging
from pathlib import Path

import pdfplumber
from docx import Document
from fastapi import HTTPException, UploadFile

from mentorhub.core.config import settings

logger = logging.getLogger(__name__)

MIME_TYPE_MAP = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
}


class ResumeService:
    @staticmethod
    def read_upload(file: UploadFile) -> tuple[bytes, str, str]:
        """Validate an uploaded resume and return (content, extension, mime type)"""
        if not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded. Please select a file.")

        file_ext = Path(file.filename).suffix.lower()
        if file_ext not in MIME_TYPE_MAP:
            raise HTTPException(
                status_code=400,
                detail="Invalid file type. Only PDF, DOC, DOCX, and TXT files are allowed.",
            )

        # Read one byte past the limit so oversize files are detected without reading them whole
        content = file.file.read(settings.MAX_RESUME_SIZE + 1)
        if len(content) > settings.MAX_RESUME_SIZE:
            limit_mb = settings.MAX_RESUME_SIZE // (1024 * 1024)
            raise HTTPException(
                status_code=400,
                detail=f"File size too large. Maximum size is {limit_mb}MB.",
            )
        if not content:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")

        return content, file_ext, MIME_TYPE_MAP[file_ext]

    @staticmethod
    def extract_text(content: bytes, file_ext: str, original_filename: str) -> str:
        """
        Pull plain text out of a resume file.

        Extraction failures don't fail the upload: the stored content then
        explains what happened so the user can paste the text instead.
        """
        try:
            if file_ext == ".txt":
                text = content.decode("utf-8", errors="ignore")
            elif file_ext == ".pdf":
                with pdfplumber.open(io.BytesIO(content)) as pdf:
                    text = "\n".join(page.extract_text() or "" for page in pdf.pages)
            elif file_ext == ".docx":
                document = Document(io.BytesIO(content))
                text = "\n".join(paragraph.text for paragraph in document.paragraphs)
            else:
                # Legacy .doc is binary; no extractor for it
                return f"[File uploaded: {original_filename}. Unable to extract text content.]"
        except Exception as e:
            logger.warning("Text extraction failed for %s: %s", original_filename, e)
            return f"[File uploaded: {original_filename}. Error extracting text: {e}]"

        if not text.strip():
            return f"[File uploaded: {original_filename}. Text extraction produced no content.]"
        return text


resume_service = ResumeService()
