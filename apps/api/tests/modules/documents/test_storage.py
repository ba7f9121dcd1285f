"""
Tests for local asset storage.
"""

import json

import pytest

from app.modules.documents.storage import AssetStorage


@pytest.fixture
def storage(tmp_path):
    return AssetStorage(root=str(tmp_path / "assets"), base_url="/assets/")


class TestAssetStorage:
    @pytest.mark.asyncio
    async def test_save_writes_file_and_sidecar(self, storage, tmp_path):
        stored = await storage.save(b"%PDF-1.7", "hoc-ba.pdf", "application/pdf", user_id=7, metadata={"page": 1})

        path = AssetStorage.resolve(stored.file_path)
        assert path.read_bytes() == b"%PDF-1.7"
        assert path.parent == tmp_path / "assets" / "users" / "7"
        assert stored.url == f"/assets/users/7/{stored.file_id}.pdf"
        assert stored.file_size == 8

        sidecar = json.loads(path.with_name(path.name + ".meta.json").read_text(encoding="utf-8"))
        assert sidecar["originalName"] == "hoc-ba.pdf"
        assert sidecar["metadata"] == {"page": 1}

    @pytest.mark.asyncio
    async def test_extension_from_mime_type(self, storage):
        stored = await storage.save(b"\x89PNG", "scan", "image/png", user_id=7)

        assert stored.file_path.endswith(".png")

    @pytest.mark.asyncio
    async def test_read_and_delete(self, storage):
        stored = await storage.save(b"%PDF", "hoc-ba.pdf", "application/pdf", user_id=7)

        assert await storage.read(stored.file_path) == b"%PDF"

        await storage.delete(stored.file_path)
        await storage.delete(stored.file_path)

        assert not AssetStorage.resolve(stored.file_path).exists()

    @pytest.mark.asyncio
    async def test_read_missing_file(self, storage):
        with pytest.raises(FileNotFoundError):
            await storage.read("storage/assets/users/7/missing.pdf")
