from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Body, Depends, File as FormFile, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.deps import get_current_user, get_provider_factory, require_db_session
from botgate.core.errors import bad_request, not_found
from botgate.providers.factory import AssistantProviderFactory
from botgate.services.documents import associate_document, delete_document, disassociate_document, upload_document
from botgate.storage.models import File, User
from botgate.storage.repos import get_owned_file, list_files_with_bots, list_linked_bot_ids

router = APIRouter()
log = logging.getLogger(__name__)


class BotRef(BaseModel):
    id: str
    name: str


class FileOut(BaseModel):
    id: str
    fileId: str
    filename: str
    bytes: int
    purpose: str
    createdAt: datetime
    associatedBots: list[BotRef] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: File, *, with_bots: bool = True) -> FileOut:
        bots = [BotRef(id=link.bot.id, name=link.bot.name) for link in row.bot_links] if with_bots else []
        return cls(
            id=row.id,
            fileId=row.file_id,
            filename=row.filename,
            bytes=row.bytes,
            purpose=row.purpose,
            createdAt=row.created_at,
            associatedBots=bots,
        )


class FileRef(BaseModel):
    fileId: str = Field(min_length=1)


class AssociateRequest(BaseModel):
    fileId: str = Field(min_length=1)
    botIds: list[str] = Field(min_length=1)


class DisassociateRequest(BaseModel):
    fileId: str = Field(min_length=1)
    botIds: list[str] | None = None


async def _owned_file_or_404(session: AsyncSession, file_id: str, user: User) -> File:
    row = await get_owned_file(session, file_id=file_id, owner_id=user.id)
    if row is None:
        raise not_found("File not found")
    return row


@router.get("/files", response_model=list[FileOut])
async def list_files(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> list[FileOut]:
    return [FileOut.from_row(row) for row in await list_files_with_bots(session, owner_id=user.id)]


@router.post("/files")
@router.post("/upload")
async def upload_file(
    file: UploadFile = FormFile(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict:
    if not file.filename:
        raise bad_request("No file provided", code="VALIDATION_ERROR")
    content = await file.read()
    provider = factory.for_user(user)

    outcome = await upload_document(session, provider, owner_id=user.id, filename=file.filename, content=content)
    if outcome.file is None:
        return {
            "success": True,
            "fileId": outcome.remote_file_id,
            "warning": outcome.warning,
            "error": outcome.error,
        }
    return {"success": True, "fileId": outcome.remote_file_id, "file": FileOut.from_row(outcome.file, with_bots=False)}


@router.delete("/files")
async def delete_file(
    body: FileRef = Body(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict[str, bool]:
    row = await _owned_file_or_404(session, body.fileId, user)
    await delete_document(session, factory.for_user(user), file=row)
    return {"success": True}


@router.get("/files/associate")
async def get_associations(
    fileId: str = Query(min_length=1),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> dict[str, list[str]]:
    row = await _owned_file_or_404(session, fileId, user)
    return {"associatedBotIds": await list_linked_bot_ids(session, file_pk=row.id)}


@router.post("/files/associate")
async def associate_file(
    body: AssociateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict:
    row = await _owned_file_or_404(session, body.fileId, user)
    outcome = await associate_document(
        session, factory.for_user(user), file=row, bot_ids=body.botIds, owner_id=user.id
    )
    log.info(
        "file.associate_done",
        extra={"file_id": row.file_id, "succeeded": len(outcome.succeeded), "failed": outcome.failed},
    )
    return {"success": True, "associatedBots": outcome.succeeded, "failedAssociations": outcome.failed}


@router.delete("/files/associate")
async def disassociate_file(
    body: DisassociateRequest = Body(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict:
    row = await _owned_file_or_404(session, body.fileId, user)
    outcome = await disassociate_document(session, factory.for_user(user), file=row, bot_ids=body.botIds)
    return {"success": True, "removedFromBots": outcome.succeeded, "failedRemovals": outcome.failed}
