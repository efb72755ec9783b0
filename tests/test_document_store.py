import asyncio
import json

import pytest

from core.document_store import FileDocumentStore


def test_versions_are_numbered_per_type_program_and_user(tmp_path):
    store = FileDocumentStore(str(tmp_path))

    async def scenario():
        await store.create_document("SOP", "v1", program_id="mit", user_id="u1")
        await store.create_document("SOP", "v2", program_id="mit", user_id="u1")
        await store.create_document("SOP", "other program", program_id="cmu", user_id="u1")
        await store.create_document("CV", "cv", user_id="u1")
        return (await store.list_versions("SOP", program_id="mit", user_id="u1"),
                await store.list_versions("SOP", program_id="cmu", user_id="u1"))

    mit, cmu = asyncio.run(scenario())
    assert [(d.version_number, d.content) for d in mit] == [(2, "v2"), (1, "v1")]
    assert [d.version_number for d in cmu] == [1]


def test_update_and_reload_from_disk(tmp_path):
    async def scenario():
        store = FileDocumentStore(str(tmp_path))
        doc_id = await store.create_document("Essay", "draft", file_name="essay.docx")
        await store.update_document(doc_id, content="final", feedback={"summary": "Nice"})
        reopened = FileDocumentStore(str(tmp_path))
        return doc_id, await reopened.get_document(doc_id)

    doc_id, doc = asyncio.run(scenario())
    assert doc.content == "final"
    assert doc.feedback == {"summary": "Nice"}
    assert doc.file_name == "essay.docx"
    assert doc.updated_at >= doc.created_at
    on_disk = json.loads((tmp_path / f"document_{doc_id}.json").read_text(encoding="utf-8"))
    assert on_disk["content"] == "final"


def test_update_rejects_unknown_fields_and_ids(tmp_path):
    store = FileDocumentStore(str(tmp_path))

    async def scenario():
        doc_id = await store.create_document("CV", "cv")
        with pytest.raises(ValueError):
            await store.update_document(doc_id, version_number=9)
        with pytest.raises(KeyError):
            await store.update_document("missing", content="x")

    asyncio.run(scenario())


def test_unreadable_files_are_skipped(tmp_path):
    (tmp_path / "document_broken.json").write_text("{not json", encoding="utf-8")
    store = FileDocumentStore(str(tmp_path))
    assert asyncio.run(store.list_versions("SOP")) == []


def test_to_dict_uses_api_field_names(tmp_path):
    store = FileDocumentStore(str(tmp_path))

    async def scenario():
        doc_id = await store.create_document("LOR", "text", program_id="p1")
        return await store.get_document(doc_id)

    data = asyncio.run(scenario()).to_dict()
    assert data["documentType"] == "LOR"
    assert data["linkedProgramId"] == "p1"
    assert data["versionNumber"] == 1
    assert data["feedback"] is None
