from __future__ import annotations

import pytest
from sqlalchemy import func, select

from botgate.core.errors import ProviderError
from botgate.storage.models import File, FileToBot
from botgate.storage.repos import create_file


async def _upload(client, headers, name: str = "notes.txt") -> str:
    resp = await client.post("/files", files={"file": (name, b"hello world", "text/plain")}, headers=headers)
    assert resp.status_code == 200
    return resp.json()["fileId"]


async def _links(sessionmaker) -> int:
    async with sessionmaker() as session:
        return await session.scalar(select(func.count()).select_from(FileToBot))


@pytest.mark.asyncio
async def test_upload_stores_file_row(client, provider, make_user, auth_headers, sessionmaker) -> None:
    user = await make_user()

    resp = await client.post(
        "/upload", files={"file": ("notes.txt", b"hello world", "text/plain")}, headers=auth_headers(user)
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["file"]["filename"] == "notes.txt"
    assert body["file"]["bytes"] == 11
    assert provider.ops("upload_file") == [("upload_file", "notes.txt")]
    async with sessionmaker() as session:
        row = await session.scalar(select(File).where(File.file_id == body["fileId"]))
    assert row is not None and row.user_id == user.id


@pytest.mark.asyncio
async def test_upload_reports_warning_when_row_insert_fails(
    client, provider, make_user, auth_headers, sessionmaker
) -> None:
    user = await make_user()
    # The fake provider's first upload id is file_1; a stored row with that id makes the insert fail.
    async with sessionmaker() as session:
        await create_file(
            session, owner_id=user.id, file_id="file_1", filename="old.txt", purpose="assistants", size_bytes=1
        )
        await session.commit()

    resp = await client.post(
        "/files", files={"file": ("notes.txt", b"hello world", "text/plain")}, headers=auth_headers(user)
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["fileId"] == "file_1"
    assert body["warning"] == "File uploaded to OpenAI but database storage failed"
    assert body["error"]
    assert "file" not in body
    assert provider.ops("upload_file") == [("upload_file", "notes.txt")]
    async with sessionmaker() as session:
        rows = (await session.execute(select(File).where(File.file_id == "file_1"))).scalars().all()
    assert [row.filename for row in rows] == ["old.txt"]


@pytest.mark.asyncio
async def test_associate_is_idempotent(client, provider, make_user, make_bot, auth_headers, sessionmaker) -> None:
    user = await make_user()
    bot = await make_bot(user)
    headers = auth_headers(user)
    file_id = await _upload(client, headers)

    first = await client.post("/files/associate", json={"fileId": file_id, "botIds": [bot.id]}, headers=headers)
    second = await client.post("/files/associate", json={"fileId": file_id, "botIds": [bot.id]}, headers=headers)

    assert first.json() == second.json() == {"success": True, "associatedBots": [bot.id], "failedAssociations": 0}
    # Already linked locally: no second remote add.
    assert provider.ops("add_file_to_vector_store") == [("add_file_to_vector_store", "vs_seed", file_id)]
    assert await _links(sessionmaker) == 1

    resp = await client.get("/files/associate", params={"fileId": file_id}, headers=headers)
    assert resp.json() == {"associatedBotIds": [bot.id]}


@pytest.mark.asyncio
async def test_remote_already_exists_repairs_join_row(
    client, provider, make_user, make_bot, auth_headers, sessionmaker
) -> None:
    user = await make_user()
    bot = await make_bot(user)
    headers = auth_headers(user)
    file_id = await _upload(client, headers)
    provider.fail["add_file_to_vector_store"] = ProviderError(
        "OpenAI vector_store.file_add failed (400): File already exists in vector store", upstream_status=400
    )

    resp = await client.post("/files/associate", json={"fileId": file_id, "botIds": [bot.id]}, headers=headers)

    assert resp.json()["associatedBots"] == [bot.id]
    assert await _links(sessionmaker) == 1


@pytest.mark.asyncio
async def test_associate_counts_per_bot_failures(client, provider, make_user, make_bot, auth_headers) -> None:
    user = await make_user()
    good = await make_bot(user, name="good")
    unprovisioned = await make_bot(user, name="bare", vector_store_id=None)
    headers = auth_headers(user)
    file_id = await _upload(client, headers)

    resp = await client.post(
        "/files/associate", json={"fileId": file_id, "botIds": [good.id, unprovisioned.id]}, headers=headers
    )

    assert resp.json() == {"success": True, "associatedBots": [good.id], "failedAssociations": 1}


@pytest.mark.asyncio
async def test_associate_with_foreign_bot(client, provider, make_user, make_bot, auth_headers) -> None:
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    mine = await make_bot(alice)
    theirs = await make_bot(bob)
    headers = auth_headers(alice)
    file_id = await _upload(client, headers)

    resp = await client.post(
        "/files/associate", json={"fileId": file_id, "botIds": [mine.id, theirs.id]}, headers=headers
    )

    assert resp.status_code == 404
    assert resp.json()["error"] == "One or more bots not found"
    assert provider.ops("add_file_to_vector_store") == []


@pytest.mark.asyncio
async def test_foreign_file_is_not_found(client, make_user, auth_headers) -> None:
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    file_id = await _upload(client, auth_headers(alice))

    resp = await client.get("/files/associate", params={"fileId": file_id}, headers=auth_headers(bob))

    assert resp.status_code == 404
    assert resp.json()["error"] == "File not found"


@pytest.mark.asyncio
async def test_disassociate_tolerates_remote_not_found(
    client, provider, make_user, make_bot, auth_headers, sessionmaker
) -> None:
    user = await make_user()
    bot = await make_bot(user)
    headers = auth_headers(user)
    file_id = await _upload(client, headers)
    await client.post("/files/associate", json={"fileId": file_id, "botIds": [bot.id]}, headers=headers)
    provider.fail["remove_file_from_vector_store"] = ProviderError("No file found", upstream_status=404)

    resp = await client.request("DELETE", "/files/associate", json={"fileId": file_id}, headers=headers)

    assert resp.json() == {"success": True, "removedFromBots": [bot.id], "failedRemovals": 0}
    assert await _links(sessionmaker) == 0


@pytest.mark.asyncio
async def test_list_files_includes_bots(client, make_user, make_bot, auth_headers) -> None:
    user = await make_user()
    bot = await make_bot(user, name="Support")
    headers = auth_headers(user)
    file_id = await _upload(client, headers)
    await client.post("/files/associate", json={"fileId": file_id, "botIds": [bot.id]}, headers=headers)

    resp = await client.get("/files", headers=headers)

    assert resp.status_code == 200
    [entry] = resp.json()
    assert entry["fileId"] == file_id
    assert entry["associatedBots"] == [{"id": bot.id, "name": "Support"}]


@pytest.mark.asyncio
async def test_delete_file_removes_links_and_row(
    client, provider, make_user, make_bot, auth_headers, sessionmaker
) -> None:
    user = await make_user()
    bot = await make_bot(user)
    headers = auth_headers(user)
    file_id = await _upload(client, headers)
    await client.post("/files/associate", json={"fileId": file_id, "botIds": [bot.id]}, headers=headers)
    provider.fail["delete_file"] = ProviderError("No such File object", upstream_status=404)

    resp = await client.request("DELETE", "/files", json={"fileId": file_id}, headers=headers)

    assert resp.status_code == 200
    assert await _links(sessionmaker) == 0
    async with sessionmaker() as session:
        assert await session.scalar(select(File).where(File.file_id == file_id)) is None


@pytest.mark.asyncio
async def test_delete_file_keeps_row_on_remote_error(client, provider, make_user, auth_headers, sessionmaker) -> None:
    user = await make_user()
    headers = auth_headers(user)
    file_id = await _upload(client, headers)
    provider.fail["delete_file"] = ProviderError("OpenAI file.delete failed (500): boom", upstream_status=500)

    resp = await client.request("DELETE", "/files", json={"fileId": file_id}, headers=headers)

    assert resp.status_code == 502
    async with sessionmaker() as session:
        assert await session.scalar(select(File).where(File.file_id == file_id)) is not None
