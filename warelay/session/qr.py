"""Pairing code to displayable image conversion."""

from __future__ import annotations

import segno


def qr_to_data_url(payload: str, *, scale: int = 6, border: int = 2) -> str:
    """Render a pairing code as a ``data:image/png;base64,...`` URL."""
    if not payload:
        raise ValueError("QR payload is empty")
    return segno.make(payload, error="m", micro=False).png_data_uri(scale=scale, border=border)
