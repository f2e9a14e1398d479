import io

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """A one-page PDF standing in for an uploaded document scan."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle("Meeting notes")
    c.drawString(72, 760, "Meeting notes")
    c.drawString(72, 740, "Agreed to renew the office lease.")
    c.save()
    return buf.getvalue()
