import io

import pytest

from avotrace.errors import LotStateError, NotFoundError, ValidationFailed, VersionConflictError
from avotrace.models.lot_models import LotCreateModel
from avotrace.models.quality_models import QcCreateModel, QcUpdateModel
from avotrace.services.lots.lot_service import LotService
from avotrace.services.quality.quality_service import QualityService, palette_averages

from tests.helpers import USER_ID


def _create(**kwargs):
    return QualityService.create(USER_ID, QcCreateModel(**kwargs))


class TestRecords:
    def test_new_record_defaults(self, ctx):
        rec = _create(lotNumber="QC-1")
        assert rec["status"] == "draft"
        assert rec["phase"] == "controller"
        assert rec["version"] == 1
        assert rec["pendingSync"] is False
        form = rec["formData"]
        assert len(form["palettes"]) == 5
        assert form["palettes"][0]["firmness"] == "0"
        assert form["palettes"][0]["paletteConformity"] == "C"
        assert form["category"] == "I"
        assert form["exporterNumber"] == "106040"

    def test_update_merges_form(self, ctx):
        rec = _create()
        rec = QualityService.update(rec["id"], QcUpdateModel(formData={"variety": "Hass"}, status="completed"))
        assert rec["formData"]["variety"] == "Hass"
        assert rec["formData"]["category"] == "I"
        assert rec["status"] == "completed"

    def test_update_cannot_jump_to_review_status(self, ctx):
        rec = _create()
        with pytest.raises(ValidationFailed):
            QualityService.update(rec["id"], QcUpdateModel(status="chief_approved"))

    def test_stale_version(self, ctx):
        rec = _create()
        QualityService.update(rec["id"], QcUpdateModel(formData={"product": "A"}, baseVersion=1))
        with pytest.raises(VersionConflictError):
            QualityService.update(rec["id"], QcUpdateModel(formData={"product": "B"}, baseVersion=1))

    def test_palette_update_extends_list(self, ctx):
        rec = _create()
        rec = QualityService.update_palette(rec["id"], 6, {"firmness": "7.5"})
        palettes = rec["formData"]["palettes"]
        assert len(palettes) == 7
        assert palettes[6]["firmness"] == "7.5"
        assert palettes[5]["firmness"] == "0"

    def test_duplicate(self, ctx):
        rec = _create(lotNumber="QC-7", formData={"variety": "Fuerte"})
        QualityService.submit(rec["id"], "ctrl")
        dup = QualityService.duplicate(rec["id"], USER_ID)
        assert dup["id"] != rec["id"]
        assert dup["lotNumber"] == "QC-7-COPY"
        assert dup["status"] == "draft"
        assert dup["phase"] == "controller"
        assert dup["formData"]["variety"] == "Fuerte"

    def test_delete(self, ctx):
        rec = _create()
        assert QualityService.delete(rec["id"]) == {"deleted": rec["id"]}
        with pytest.raises(NotFoundError):
            QualityService.get(rec["id"])

    def test_list_filters_by_status(self, ctx):
        a = _create()
        _create()
        QualityService.submit(a["id"])
        assert [r["id"] for r in QualityService.list_records(status="submitted")] == [a["id"]]
        assert len(QualityService.list_records()) == 2


class TestReview:
    def test_submit_then_approve(self, ctx):
        rec = _create()
        rec = QualityService.submit(rec["id"], "controller-1")
        assert (rec["status"], rec["phase"], rec["controller"]) == ("submitted", "chief", "controller-1")

        with pytest.raises(LotStateError):
            QualityService.update(rec["id"], QcUpdateModel(formData={"product": "x"}))

        rec = QualityService.review(rec["id"], "chief-1", True, "ok")
        assert rec["status"] == "chief_approved"
        assert rec["chief"] == "chief-1"
        assert rec["chiefComments"] == "ok"
        assert rec["chiefApprovalDate"]

    def test_reject_returns_to_controller(self, ctx):
        rec = QualityService.submit(_create()["id"])
        rec = QualityService.review(rec["id"], "chief-1", False, "redo palette 3")
        assert rec["status"] == "chief_rejected"
        assert rec["phase"] == "controller"
        rec = QualityService.update(rec["id"], QcUpdateModel(formData={"product": "fixed"}))
        assert rec["formData"]["product"] == "fixed"

    def test_only_submitted_can_be_reviewed(self, ctx):
        rec = _create()
        with pytest.raises(LotStateError):
            QualityService.review(rec["id"], "chief-1", True)


class TestAverages:
    def test_mean_of_positive_numbers(self):
        record = {"formData": {"palettes": [
            {"firmness": "10"}, {"firmness": "12.5"}, {"firmness": "0"}, {"firmness": "C"}, {"firmness": ""},
        ]}}
        assert palette_averages(record, ("firmness",)) == {"firmness": 11.2}

    def test_no_values(self):
        assert palette_averages({"formData": {"palettes": [{}]}}, ("rotting",)) == {"rotting": 0.0}

    def test_service_averages(self, ctx):
        rec = _create()
        QualityService.update_palette(rec["id"], 0, {"rotting": "2"})
        QualityService.update_palette(rec["id"], 1, {"rotting": "3"})
        assert QualityService.averages(rec["id"])["rotting"] == 2.5


class TestSyncFromLots:
    def test_one_sheet_per_lot(self, ctx):
        lot = LotService.create_lot(USER_ID, LotCreateModel(
            lotNumber="L-1", stages={"harvest": {"harvestDate": "2025-02-02", "variety": "hass"}}
        ))
        created = QualityService.sync_from_lots(USER_ID)
        assert len(created) == 1
        sheet = created[0]
        assert sheet["id"] == f"quality-{lot['id']}"
        assert sheet["lotNumber"] == "QL-L-1"
        assert sheet["sourceLotNumber"] == "L-1"
        assert sheet["formData"]["clientLot"] == "L-1"
        assert sheet["formData"]["date"] == "2025-02-02"

        assert QualityService.sync_from_lots(USER_ID) == []


class TestRoutes:
    def test_flow(self, client):
        res = client.post("/api/quality", json={"lotNumber": "QC-R"})
        assert res.status_code == 201
        rid = res.get_json()["record"]["id"]

        res = client.put(f"/api/quality/{rid}/palettes/0", json={"values": {"firmness": "8"}})
        assert res.status_code == 200
        assert client.get(f"/api/quality/{rid}/averages").get_json()["averages"]["firmness"] == 8.0

        assert client.post(f"/api/quality/{rid}/approve", json={"chief": "c"}).status_code == 409
        assert client.post(f"/api/quality/{rid}/submit", json={}).status_code == 200
        res = client.post(f"/api/quality/{rid}/reject", json={"chief": "c", "comments": "no"})
        assert res.get_json()["record"]["status"] == "chief_rejected"

    def test_image_upload(self, client, app):
        rid = client.post("/api/quality", json={}).get_json()["record"]["id"]
        res = client.post(
            f"/api/quality/{rid}/images",
            data={"file": (io.BytesIO(b"\x89PNG fake"), "palette.png")},
            content_type="multipart/form-data",
        )
        assert res.status_code == 201
        url = res.get_json()["record"]["images"][0]
        assert url.startswith("/files/quality/")
        assert client.get(url).data == b"\x89PNG fake"

    def test_rejects_bad_extension(self, client):
        rid = client.post("/api/quality", json={}).get_json()["record"]["id"]
        res = client.post(
            f"/api/quality/{rid}/images",
            data={"file": (io.BytesIO(b"MZ"), "tool.exe")},
            content_type="multipart/form-data",
        )
        assert res.status_code == 400

    def test_sync_endpoint(self, client):
        res = client.post("/api/quality/sync")
        assert res.get_json() == {"ok": True, "synced": [], "conflicts": [], "failed": []}
