"""
QR code generation for the guest join page
"""

import io
import qrcode

from app.core.config import settings

class QRService:
    """Service for generating QR codes"""

    @staticmethod
    def get_join_url(slug: str) -> str:
        """URL of the kiosk form guests scan into"""
        return f"{settings.BASE_URL}/join/{slug}"

    @staticmethod
    def generate_join_qr(slug: str, format: str = 'PNG') -> bytes:
        """Generate QR code pointing at a restaurant's join page"""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(QRService.get_join_url(slug))
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format=format)

        return buffer.getvalue()
