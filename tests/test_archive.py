import io
import os

import pytest
from pymongo.errors import AutoReconnect

from avotrace.errors import NotFoundError, StorageUnavailableError, ValidationFailed
from avotrace.models.archive_models import BoxCreateModel, BoxItemCreateModel
from avotrace.services.archive import archive_service
from avotrace.services.archive.archive_service import ITEMS, ArchiveService
from avotrace.services.archive.object_storage import ObjectStorage

from tests.helpers import OTHER_USER_ID, USER_ID


class _Upload:
    """Minimal stand-in for a werkzeug FileStorage."""

    def __init__(self, filename, data=b"data"):
        self.filename = filename
        self.data = data

    def save(self, path):
        with open(path, "wb") as f:
            f.write(self.data)


def _box(title="Certificates"):
    return ArchiveService.create_box(USER_ID, BoxCreateModel(title=title))


def _stored_files(root):
    out = []
    for dirpath, _dirs, files in os.walk(root):
        out.extend(os.path.join(dirpath, f) for f in files)
    return out


class TestObjectStorage:
    def test_put_and_delete(self, ctx):
        stored = ObjectStorage.put("archive/u1", _Upload("Scan 01.PDF"))
        assert stored["storagePath"].startswith("archive/u1/")
        assert stored["storagePath"].endswith(".pdf")
        assert stored["fileUrl"] == f"/files/{stored['storagePath']}"
        assert stored["filename"] == "Scan_01.PDF"
        assert os.path.isfile(ObjectStorage.resolve(stored["storagePath"]))

        assert ObjectStorage.delete(stored["storagePath"]) is True
        assert ObjectStorage.delete(stored["storagePath"]) is False

    def test_rejects_other_types(self, ctx):
        with pytest.raises(ValidationFailed):
            ObjectStorage.put("x", _Upload("payload.sh"))

    def test_path_cannot_escape_root(self, ctx):
        assert ObjectStorage.resolve("../outside.txt") is None
        assert ObjectStorage.resolve("") is None


class TestBoxes:
    def test_create_and_list_with_counts(self, ctx):
        box = _box()
        assert box["color"] == "#4f7d5c"
        assert box["icon"] == "folder"
        ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="note"))

        boxes = ArchiveService.list_boxes(USER_ID)
        assert [(b["title"], b["itemCount"]) for b in boxes] == [("Certificates", 1)]
        assert ArchiveService.list_boxes(OTHER_USER_ID) == []

    def test_title_is_required(self):
        with pytest.raises(ValueError):
            BoxCreateModel(title="   ")

    def test_boxes_are_private(self, ctx):
        box = _box()
        with pytest.raises(NotFoundError):
            ArchiveService.list_items(box["id"], OTHER_USER_ID)

    def test_delete_cascades_items_and_files(self, ctx, db):
        box = _box()
        ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="a"), _Upload("a.png"))
        ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="b"), _Upload("b.pdf"))
        ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="memo"))

        result = ArchiveService.delete_box(box["id"], USER_ID)
        assert result == {"deleted": box["id"], "items": 3, "files": 2}
        assert db[ITEMS].count_documents({}) == 0
        assert _stored_files(ctx.config["UPLOAD_ROOT"]) == []


class TestItems:
    def test_type_inferred_from_file(self, ctx):
        box = _box()
        image = ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="photo"), _Upload("p.jpg"))
        doc = ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="cert"), _Upload("c.pdf"))
        note = ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="memo"))
        assert (image["type"], doc["type"], note["type"]) == ("image", "pdf", "note")
        assert note["fileUrl"] is None

    def test_explicit_type_kept(self, ctx):
        box = _box()
        item = ArchiveService.add_item(
            box["id"], USER_ID, BoxItemCreateModel(name="invoice", type="invoice"), _Upload("i.pdf")
        )
        assert item["type"] == "invoice"

    def test_failed_insert_removes_file(self, ctx, monkeypatch):
        box = _box()
        real = archive_service.require_col

        class _FailingInsert:
            def __init__(self, col):
                self.col = col

            def insert_one(self, doc):
                raise AutoReconnect("connection lost")

            def __getattr__(self, name):
                return getattr(self.col, name)

        monkeypatch.setattr(
            archive_service, "require_col",
            lambda name: _FailingInsert(real(name)) if name == ITEMS else real(name),
        )
        with pytest.raises(StorageUnavailableError):
            ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="lost"), _Upload("l.png"))
        assert _stored_files(ctx.config["UPLOAD_ROOT"]) == []

    def test_delete_item_removes_file(self, ctx):
        box = _box()
        item = ArchiveService.add_item(box["id"], USER_ID, BoxItemCreateModel(name="a"), _Upload("a.png"))
        assert ArchiveService.delete_item(item["id"], USER_ID) == {"deleted": item["id"]}
        assert ObjectStorage.resolve(item["storagePath"]) is not None
        assert not os.path.exists(ObjectStorage.resolve(item["storagePath"]))

        with pytest.raises(NotFoundError):
            ArchiveService.delete_item(item["id"], USER_ID)


class TestRoutes:
    def test_upload_and_download(self, client):
        box_id = client.post("/api/archive/boxes", json={"title": "Export docs"}).get_json()["box"]["id"]

        res = client.post(
            f"/api/archive/boxes/{box_id}/items",
            data={"name": "phyto", "file": (io.BytesIO(b"%PDF-1.4 test"), "phyto.pdf")},
            content_type="multipart/form-data",
        )
        assert res.status_code == 201
        item = res.get_json()["item"]
        assert item["type"] == "pdf"

        assert client.get(item["fileUrl"]).data == b"%PDF-1.4 test"
        items = client.get(f"/api/archive/boxes/{box_id}/items").get_json()["items"]
        assert [i["name"] for i in items] == ["phyto"]

    def test_note_as_json(self, client):
        box_id = client.post("/api/archive/boxes", json={"title": "Notes"}).get_json()["box"]["id"]
        res = client.post(f"/api/archive/boxes/{box_id}/items", json={"name": "call the buyer"})
        assert res.status_code == 201
        assert res.get_json()["item"]["type"] == "note"

    def test_bad_extension_is_400(self, client):
        box_id = client.post("/api/archive/boxes", json={"title": "B"}).get_json()["box"]["id"]
        res = client.post(
            f"/api/archive/boxes/{box_id}/items",
            data={"name": "x", "file": (io.BytesIO(b"MZ"), "x.exe")},
            content_type="multipart/form-data",
        )
        assert res.status_code == 400
        assert res.get_json()["ok"] is False

    def test_missing_file_is_404(self, anon_client):
        assert anon_client.get("/files/archive/nothing.png").status_code == 404

    def test_delete_box_route(self, client):
        box_id = client.post("/api/archive/boxes", json={"title": "Old"}).get_json()["box"]["id"]
        res = client.delete(f"/api/archive/boxes/{box_id}")
        assert res.get_json()["deleted"] == box_id
        assert client.delete(f"/api/archive/boxes/{box_id}").status_code == 404

    def test_requires_login(self, anon_client):
        assert anon_client.get("/api/archive/boxes").status_code == 401
