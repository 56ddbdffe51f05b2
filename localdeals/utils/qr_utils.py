# localdeals/utils/qr_utils.py
import base64

from reportlab.graphics import renderSVG
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing

from localdeals.core.config import FRONTEND_URL

QR_SIZE = 256


def redeem_url(qr_data: str) -> str:
    return f"{FRONTEND_URL.rstrip('/')}/redeem/{qr_data}"


def render_qr_svg(value: str, size: int = QR_SIZE) -> str:
    widget = QrCodeWidget(value)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    return renderSVG.drawToString(drawing)


def qr_data_url(value: str, size: int = QR_SIZE) -> str:
    svg = render_qr_svg(value, size)
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")
