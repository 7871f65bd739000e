import logging
import os
import secrets
import time
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlmodel import Session, select

from helpdesk.api.deps import get_current_user
from helpdesk.core.config import settings
from helpdesk.db.session import get_session
from helpdesk.models.ticket import Ticket, TicketAttachment, TicketMessage
from helpdesk.models.user import User
from helpdesk.services.tickets import attachment_out, can_post_message, can_view_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["attachments"])

ALLOWED_TYPES: dict[str, tuple[str, ...]] = {
    ".jpeg": ("image/jpeg", "image/pjpeg"),
    ".jpg": ("image/jpeg", "image/pjpeg"),
    ".png": ("image/png",),
    ".gif": ("image/gif",),
    ".mp4": ("video/mp4",),
    ".mov": ("video/quicktime",),
    ".avi": ("video/x-msvideo", "video/avi", "video/msvideo"),
    ".pdf": ("application/pdf",),
    ".doc": ("application/msword",),
    ".docx": ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
    ".txt": ("text/plain",),
}

CHUNK = 1024 * 1024


def _upload_dir() -> Path:
    path = Path(settings.upload_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _check_type(file: UploadFile) -> tuple[str, str]:
    original = os.path.basename(file.filename or "")
    ext = os.path.splitext(original)[1].lower()
    mime = (file.content_type or "").split(";")[0].strip().lower()
    if ext not in ALLOWED_TYPES or mime not in ALLOWED_TYPES[ext]:
        raise HTTPException(status_code=400, detail="Invalid file type")
    return original, ext


def _store_upload(file: UploadFile, field: str = "file") -> dict:
    original, ext = _check_type(file)
    stored = f"{field}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
    dest = _upload_dir() / stored

    size = 0
    try:
        with dest.open("wb") as out:
            while True:
                chunk = file.file.read(CHUNK)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.upload_max_bytes:
                    raise HTTPException(status_code=413, detail="File too large")
                out.write(chunk)
    except HTTPException:
        dest.unlink(missing_ok=True)
        raise

    logger.info("File uploaded", extra={"file_name": stored, "size": size})
    return {
        "file_name": stored,
        "original_name": original,
        "mime_type": (file.content_type or "").split(";")[0].strip().lower(),
        "file_size": size,
        "file_path": str(dest),
    }


@router.post("/tickets/{ticket_id}/attachments", status_code=201)
def upload_ticket_attachment(
    ticket_id: int,
    file: UploadFile = File(...),
    message_id: Optional[int] = Form(default=None),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    if not can_post_message(user, ticket):
        raise HTTPException(status_code=403, detail="Not allowed to post in this chat")

    if message_id is not None:
        message = session.get(TicketMessage, message_id)
        if not message or message.ticket_id != ticket.id:
            raise HTTPException(status_code=400, detail="Unknown message")

    stored = _store_upload(file)
    attachment = TicketAttachment(ticket_id=ticket.id, message_id=message_id, uploaded_by_id=user.id, **stored)
    session.add(attachment)
    session.commit()
    session.refresh(attachment)
    return attachment_out(attachment)


@router.post("/upload")
def upload_file(file: UploadFile = File(...), user: User = Depends(get_current_user)):
    stored = _store_upload(file)
    return {
        "filename": stored["file_name"],
        "originalname": stored["original_name"],
        "size": stored["file_size"],
        "mimetype": stored["mime_type"],
        "path": f"/api/attachments/{stored['file_name']}",
    }


@router.get("/attachments/{filename}")
def download_attachment(filename: str, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    if not filename or filename != os.path.basename(filename) or filename in (".", "..") or "\\" in filename:
        raise HTTPException(status_code=400, detail="Invalid file name")

    attachment = session.exec(select(TicketAttachment).where(TicketAttachment.file_name == filename)).first()
    if attachment:
        ticket_id = attachment.ticket_id
        if ticket_id is None and attachment.message_id is not None:
            message = session.get(TicketMessage, attachment.message_id)
            ticket_id = message.ticket_id if message else None
        ticket = session.get(Ticket, ticket_id) if ticket_id is not None else None
        if ticket and not can_view_ticket(user, ticket):
            raise HTTPException(status_code=403, detail="Access denied")

    path = _upload_dir() / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    if attachment:
        return FileResponse(path, media_type=attachment.mime_type, filename=attachment.original_name)
    return FileResponse(path)
