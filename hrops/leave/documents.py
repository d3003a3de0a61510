"""Supporting documents attached to a leave request.

Content is stored as the base64 text the client sent; only the MIME type
and decoded size are checked here.
"""

from __future__ import annotations

import base64
import binascii
import uuid
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.constants import ALLOWED_DOCUMENT_TYPES
from hrops.common.exceptions import ValidationException
from hrops.config import settings
from hrops.leave.models import LeaveDocument
from hrops.leave.schemas import LeaveDocumentIn


def _decoded_size(file_data: str) -> int:
    # Accept data URLs ("data:application/pdf;base64,....") as sent by the app.
    if file_data.startswith("data:") and "," in file_data:
        file_data = file_data.split(",", 1)[1]
    return len(base64.b64decode(file_data, validate=True))


def build_documents(payloads: Sequence[LeaveDocumentIn]) -> list[LeaveDocument]:
    """Validate uploads and turn them into unsaved LeaveDocument rows."""
    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    errors: dict[str, list[str]] = {}
    documents: list[LeaveDocument] = []

    for index, doc in enumerate(payloads):
        key = f"documents.{index}"
        if doc.file_type.lower() not in ALLOWED_DOCUMENT_TYPES:
            errors.setdefault(key, []).append(
                f"Unsupported file type '{doc.file_type}'. Allowed: PDF, JPEG, PNG."
            )
            continue
        try:
            size = _decoded_size(doc.file_data)
        except (binascii.Error, ValueError):
            errors.setdefault(key, []).append("file_data is not valid base64.")
            continue
        if size > max_bytes:
            errors.setdefault(key, []).append(
                f"File exceeds the {settings.MAX_UPLOAD_SIZE_MB} MB limit."
            )
            continue
        documents.append(
            LeaveDocument(
                file_name=doc.file_name,
                file_type=doc.file_type.lower(),
                file_data=doc.file_data,
                upload_method=doc.upload_method,
            )
        )

    if errors:
        raise ValidationException(errors)
    return documents


async def get_documents(
    db: AsyncSession,
    request_id: uuid.UUID,
) -> Sequence[LeaveDocument]:
    result = await db.execute(
        select(LeaveDocument)
        .where(LeaveDocument.request_id == request_id)
        .order_by(LeaveDocument.created_at)
    )
    return result.scalars().all()
