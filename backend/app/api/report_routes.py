"""
Report download routes — BOQ workbook and payment certificate PDF.

GET /api/reports/{id}/workbook.xlsx    — all documents for the session's mode
GET /api/reports/{id}/certificate.pdf  — printable payment certificate (payment mode)

Both require the project to be unlocked (402 otherwise).
"""
import logging
import os

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from app.api.deps import require_unlocked
from app.models.boq_schema import AppMode
from app.services.report_engine import ReportEngine
from app.services.session_store import ProjectSession

router = APIRouter(prefix="/api/reports", tags=["Reports"])
logger = logging.getLogger("constructai-report-routes")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/{session_id}/workbook.xlsx")
async def download_workbook(
    search: str = "",
    source: str = "All",
    session: ProjectSession = Depends(require_unlocked),
):
    try:
        path = ReportEngine(session).generate_workbook(search_term=search, source_filter=source)
    except Exception as e:
        logger.error(f"Workbook export failed: {e}", extra={"session_id": session.id})
        raise HTTPException(status_code=500, detail="Workbook generation failed")
    return FileResponse(path, media_type=XLSX_MEDIA_TYPE, filename=os.path.basename(path))


@router.get("/{session_id}/certificate.pdf")
async def download_certificate(session: ProjectSession = Depends(require_unlocked)):
    if session.mode is not AppMode.PAYMENT:
        raise HTTPException(status_code=400, detail="Payment certificates exist only for payment-mode sessions")
    try:
        path = ReportEngine(session).generate_certificate_pdf()
    except Exception as e:
        logger.error(f"Certificate export failed: {e}", extra={"session_id": session.id})
        raise HTTPException(status_code=500, detail="Certificate generation failed")
    return FileResponse(path, media_type="application/pdf", filename=os.path.basename(path))
