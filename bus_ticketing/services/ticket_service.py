"""
Ticket Service
Handles QR code and PDF e-ticket generation and on-site ticket verification
"""

import qrcode
from io import BytesIO
from reportlab.lib.pagesizes import letter
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image
from reportlab.graphics.barcode import code128
from typing import Dict, List, Optional
from datetime import date, datetime, timezone
from uuid import UUID
import logging
from PIL import Image as PILImage

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bus_ticketing.config import settings
from bus_ticketing.core.exceptions import NotFoundError, TicketNotIssuableError
from bus_ticketing.core.metrics import TICKET_VERIFICATIONS_TOTAL
from bus_ticketing.models.booking import Booking, BookingStatus
from bus_ticketing.models.route import Schedule
from bus_ticketing.models.ticket_validation import TicketCodeType, TicketValidation
from bus_ticketing.schemas.ticket import (
    TicketInfo,
    TicketVerifyResponse,
    ValidationHistoryResponse,
    ValidationRecord,
    VerificationStatus
)

logger = logging.getLogger(__name__)


def _format_time(value) -> Optional[str]:
    return value.strftime("%H:%M") if value else None


def booking_details(booking: Booking) -> Dict:
    """Flatten a booking with its schedule and route for ticket rendering"""
    schedule = booking.schedule
    route = schedule.route if schedule else None
    return {
        "booking_id": str(booking.id),
        "reference_code": booking.reference_code,
        "barcode": booking.barcode or booking.reference_code,
        "trip_date": booking.trip_date.isoformat(),
        "departure_time": _format_time(schedule.departure_time) if schedule else "N/A",
        "origin": route.origin if route else "N/A",
        "destination": route.destination if route else "N/A",
        "bus_number": schedule.bus_number if schedule else "N/A",
        "bus_type": (schedule.bus_type if schedule else None) or "N/A",
        "seats": [str(s.seat_number) for s in sorted(booking.booking_seats, key=lambda s: s.seat_number)],
        "passenger_name": booking.passenger_name or "N/A",
        "passenger_email": booking.passenger_email or "N/A",
    }


class TicketGenerator:
    """Service for generating bus e-tickets"""

    @staticmethod
    def generate_qr_code(
        data: str,
        size: int = 300,
        border: int = 4
    ) -> bytes:
        """Generate QR code for ticket validation; the payload is the reference code"""
        try:
            qr = qrcode.QRCode(
                version=1,
                error_correction=qrcode.constants.ERROR_CORRECT_H,
                box_size=10,
                border=border,
            )
            qr.add_data(data)
            qr.make(fit=True)

            img = qr.make_image(fill_color="black", back_color="white")

            if size != img.size[0]:
                img = img.resize((size, size), PILImage.LANCZOS)

            buffer = BytesIO()
            img.save(buffer, format='PNG')
            buffer.seek(0)
            return buffer.getvalue()

        except Exception as e:
            logger.error(f"Error generating QR code: {str(e)}")
            raise

    @staticmethod
    def generate_pdf_ticket(details: Dict, qr_code_data: Optional[bytes] = None) -> bytes:
        """Generate PDF ticket with trip details, QR code and barcode"""
        try:
            buffer = BytesIO()
            doc = SimpleDocTemplate(
                buffer,
                pagesize=letter,
                rightMargin=72,
                leftMargin=72,
                topMargin=72,
                bottomMargin=18,
            )
            elements = []

            styles = getSampleStyleSheet()
            title_style = ParagraphStyle(
                'TicketTitle',
                parent=styles['Heading1'],
                fontSize=24,
                textColor=colors.HexColor('#2c3e50'),
                spaceAfter=30,
                alignment=1  # Center
            )
            route_style = ParagraphStyle(
                'RouteName',
                parent=styles['Heading2'],
                fontSize=20,
                textColor=colors.HexColor('#34495e'),
                spaceAfter=20,
                alignment=1
            )
            small_style = ParagraphStyle(
                'Small',
                parent=styles['Normal'],
                fontSize=10,
                textColor=colors.grey,
                alignment=1
            )

            elements.append(Paragraph("BUS TICKET", title_style))
            elements.append(Spacer(1, 0.2 * inch))
            elements.append(Paragraph(f"{details['origin']} - {details['destination']}", route_style))
            elements.append(Spacer(1, 0.3 * inch))

            ticket_data = [
                ['Reference:', details['reference_code']],
                ['Date:', details['trip_date']],
                ['Departure:', details['departure_time']],
                ['Bus:', f"{details['bus_number']} ({details['bus_type']})"],
                ['Seats:', ', '.join(details['seats']) or 'N/A'],
                ['Passenger:', details['passenger_name']],
                ['Email:', details['passenger_email']],
            ]
            ticket_table = Table(ticket_data, colWidths=[2 * inch, 4 * inch])
            ticket_table.setStyle(TableStyle([
                ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
                ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
                ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
                ('FONTSIZE', (0, 0), (-1, -1), 12),
                ('BOTTOMPADDING', (0, 0), (-1, -1), 12),
                ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
                ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#ecf0f1')),
            ]))
            elements.append(ticket_table)
            elements.append(Spacer(1, 0.5 * inch))

            if qr_code_data:
                qr_img = Image(BytesIO(qr_code_data), width=2.5 * inch, height=2.5 * inch)
                qr_table = Table([[qr_img]], colWidths=[6 * inch])
                qr_table.setStyle(TableStyle([
                    ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
                    ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
                ]))
                elements.append(qr_table)
                elements.append(Spacer(1, 0.2 * inch))

            elements.append(Paragraph("Present this code when boarding", small_style))
            elements.append(Spacer(1, 0.3 * inch))

            barcode_value = details['barcode']
            elements.append(code128.Code128(barcode_value, barHeight=0.5 * inch, barWidth=1.2))
            elements.append(Spacer(1, 0.1 * inch))
            elements.append(Paragraph(barcode_value, small_style))

            elements.append(Spacer(1, 0.5 * inch))
            footer_style = ParagraphStyle(
                'Footer',
                parent=styles['Normal'],
                fontSize=8,
                textColor=colors.grey,
                alignment=1
            )
            footer_text = f"""
            <para align=center>
            This ticket is valid only for the date and departure shown.
            Please arrive 15 minutes before departure.<br/>
            Generated on {datetime.now().strftime('%Y-%m-%d %H:%M')}
            </para>
            """
            elements.append(Paragraph(footer_text, footer_style))

            doc.build(elements)
            buffer.seek(0)
            return buffer.getvalue()

        except Exception as e:
            logger.error(f"Error generating PDF ticket: {str(e)}")
            raise


class TicketService:
    """E-ticket issuing and on-site verification"""

    def __init__(self, session: AsyncSession, today=None):
        self.session = session
        self._today = today or date.today

    def _booking_query(self):
        return select(Booking).options(
            selectinload(Booking.schedule).selectinload(Schedule.route),
            selectinload(Booking.booking_seats)
        )

    async def get_booking(self, booking_id: UUID) -> Booking:
        result = await self.session.execute(self._booking_query().where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def _issuable_details(self, booking_id: UUID) -> Dict:
        booking = await self.get_booking(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise TicketNotIssuableError(booking.reference_code, booking.status)
        return booking_details(booking)

    async def qr_code(self, booking_id: UUID) -> bytes:
        details = await self._issuable_details(booking_id)
        return TicketGenerator.generate_qr_code(details["reference_code"])

    async def pdf_ticket(self, booking_id: UUID) -> bytes:
        details = await self._issuable_details(booking_id)
        qr = TicketGenerator.generate_qr_code(details["reference_code"])
        return TicketGenerator.generate_pdf_ticket(details, qr)

    async def find_by_code(self, code: str) -> Optional[Booking]:
        """Reference code first, then the printed barcode"""
        result = await self.session.execute(
            self._booking_query().where(Booking.reference_code == code)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            result = await self.session.execute(
                self._booking_query().where(Booking.barcode == code)
            )
            booking = result.scalar_one_or_none()
        return booking

    async def verify(self, code: str) -> TicketVerifyResponse:
        code = code.strip()
        booking = await self.find_by_code(code)
        if booking is None:
            TICKET_VERIFICATIONS_TOTAL.labels(result="NOT_FOUND").inc()
            logger.info(f"Ticket verification: no booking for code {code}")
            raise NotFoundError("Ticket", code)

        details = booking_details(booking)
        info = TicketInfo(
            id=booking.id,
            reference_code=booking.reference_code,
            trip_date=booking.trip_date,
            departure_time=details["departure_time"],
            origin=details["origin"],
            destination=details["destination"],
            bus_number=details["bus_number"],
            bus_type=details["bus_type"],
            seats=", ".join(details["seats"]),
            used_at=booking.validated_at
        )

        if booking.status != BookingStatus.CONFIRMED:
            status, message = VerificationStatus.INVALID, "Ticket is not valid: the booking is not confirmed"
        elif booking.ticket_validated:
            status, message = VerificationStatus.USED, "Ticket has already been used"
        elif booking.trip_date < self._today():
            status, message = VerificationStatus.EXPIRED, "Ticket has expired: the trip date has passed"
        else:
            status, message = VerificationStatus.VALID, "Valid ticket"
            info.used_at = await self._mark_used(booking.id, code, booking.reference_code)

        TICKET_VERIFICATIONS_TOTAL.labels(result=status.value).inc()
        logger.info(f"Ticket {booking.reference_code} verified: {status.value}", extra={"booking_id": str(booking.id)})
        return TicketVerifyResponse(
            success=status == VerificationStatus.VALID,
            status=status,
            message=message,
            ticket=info
        )

    async def _mark_used(self, booking_id: UUID, code: str, reference_code: str) -> datetime:
        """Flag the booking as boarded and keep a history row; failures are only logged"""
        now = datetime.now(timezone.utc)
        try:
            await self.session.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(ticket_validated=True, validated_at=now)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error marking ticket as used: {str(e)}", extra={"booking_id": str(booking_id)})
            return now

        try:
            self.session.add(TicketValidation(
                booking_id=booking_id,
                validated_at=now,
                code_type=TicketCodeType.QR if code == reference_code else TicketCodeType.BARCODE,
                code=code
            ))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error recording ticket validation: {str(e)}", extra={"booking_id": str(booking_id)})
        return now

    async def validation_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> ValidationHistoryResponse:
        query = select(TicketValidation).options(
            selectinload(TicketValidation.booking)
            .selectinload(Booking.schedule)
            .selectinload(Schedule.route)
        )
        if start is not None:
            query = query.where(TicketValidation.validated_at >= start)
        if end is not None:
            query = query.where(TicketValidation.validated_at <= end)
        query = query.order_by(TicketValidation.validated_at.desc()).limit(
            limit or settings.TICKET_VALIDATION_HISTORY_LIMIT
        )

        result = await self.session.execute(query)
        records: List[ValidationRecord] = []
        for row in result.scalars().all():
            booking = row.booking
            schedule = booking.schedule if booking else None
            route = schedule.route if schedule else None
            records.append(ValidationRecord(
                id=row.id,
                validated_at=row.validated_at,
                code_type=row.code_type.value,
                code=row.code,
                reference_code=booking.reference_code if booking else "N/A",
                route=f"{route.origin} → {route.destination}" if route else "N/A",
                trip_date=booking.trip_date if booking else None,
                departure_time=_format_time(schedule.departure_time) if schedule else "N/A",
                bus_number=schedule.bus_number if schedule else "N/A"
            ))
        return ValidationHistoryResponse(records=records, total=len(records))
