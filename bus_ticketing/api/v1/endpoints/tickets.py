"""
Ticket API Endpoints
E-ticket downloads and on-site verification
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.config import settings
from bus_ticketing.core.database import get_session
from bus_ticketing.core.exceptions import ValidationError
from bus_ticketing.schemas.ticket import (
    TicketVerifyRequest,
    TicketVerifyResponse,
    ValidationHistoryResponse
)
from bus_ticketing.services.ticket_service import TicketService

router = APIRouter()


@router.post("/verify", response_model=TicketVerifyResponse)
async def verify_ticket(
    data: TicketVerifyRequest,
    db: AsyncSession = Depends(get_session)
):
    """Check a scanned QR or barcode and mark the ticket as used"""
    return await TicketService(db).verify(data.code)


@router.get("/validations", response_model=ValidationHistoryResponse)
async def validation_history(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(settings.TICKET_VALIDATION_HISTORY_LIMIT, ge=1, le=1000),
    db: AsyncSession = Depends(get_session)
):
    if start and end and (start.tzinfo is None) == (end.tzinfo is None) and start > end:
        raise ValidationError("start must not be after end", field="start")
    return await TicketService(db).validation_history(start, end, limit)


@router.get("/{booking_id}/qr")
async def ticket_qr_code(booking_id: UUID, db: AsyncSession = Depends(get_session)):
    png = await TicketService(db).qr_code(booking_id)
    return Response(content=png, media_type="image/png")


@router.get("/{booking_id}/pdf")
async def ticket_pdf(booking_id: UUID, db: AsyncSession = Depends(get_session)):
    pdf = await TicketService(db).pdf_ticket(booking_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="ticket-{booking_id}.pdf"'}
    )
