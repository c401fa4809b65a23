"""
Patch certificates: the JSON view of a signed record and its one-page PDF rendering.
"""

import io
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from .errors import NotSigned
from .schema import PatchRecord

CERTIFICATE_TITLE = "Patch Certificate"


@dataclass
class Certificate:
    id: str
    repo_url: str
    signed_at: str
    signer: str
    signature: str
    pr_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: PatchRecord) -> "Certificate":
        if not record.is_signed:
            raise NotSigned(record.id)
        return cls(
            id=record.id,
            repo_url=record.repo_url,
            signed_at=record.signed_at,
            signer=record.signer,
            signature=record.signature,
            pr_url=record.pr_url,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "id": data["id"],
            "repoUrl": data["repo_url"],
            "signedAt": data["signed_at"],
            "signer": data["signer"],
            "signature": data["signature"],
            "prUrl": data["pr_url"],
        }


def _wrap(text: str, width: int) -> list:
    return [text[i:i + width] for i in range(0, len(text), width)] or [""]


def render_certificate_pdf(cert: Certificate) -> bytes:
    """Render a certificate to PDF bytes (A4, one page)."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(f"{CERTIFICATE_TITLE} {cert.id}")
    _, height = A4
    left = 18 * mm
    y = height - 24 * mm

    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawString(left, y, CERTIFICATE_TITLE)
    y -= 14 * mm

    rows = [
        ("Patch ID", cert.id),
        ("Repo", cert.repo_url),
        ("Signed By", cert.signer),
        ("Signed At", cert.signed_at),
        ("Pull Request", cert.pr_url or "-"),
    ]
    for label, value in rows:
        pdf.setFont("Helvetica-Bold", 11)
        pdf.drawString(left, y, f"{label}:")
        pdf.setFont("Helvetica", 11)
        pdf.drawString(left + 32 * mm, y, str(value))
        y -= 8 * mm

    y -= 4 * mm
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(left, y, "Signature (HMAC-SHA256):")
    y -= 7 * mm
    pdf.setFont("Courier", 10)
    for line in _wrap(cert.signature, 64):
        pdf.drawString(left, y, line)
        y -= 5 * mm

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
