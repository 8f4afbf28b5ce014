import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from pymongo.errors import ServerSelectionTimeoutError

from avotrace.errors import (
    AccessDeniedError,
    LotStateError,
    NotFoundError,
    StepIncompleteError,
    ValidationFailed,
    VersionConflictError,
)
from avotrace.models.lot_models import LotCreateModel, LotDraftUpdateModel
from avotrace.models.stage_models import TOTAL_STEPS
from avotrace.services.lots import lot_service
from avotrace.services.lots.lot_service import LOT_ARCHIVES, LOTS, LotService
from avotrace.services.serialization import parse_object_id

from tests.helpers import OTHER_USER_ID, USER_ID, full_stages


def _create(**kwargs):
    return LotService.create_lot(USER_ID, LotCreateModel(**kwargs))


def _advance(lot, steps, user_id=USER_ID):
    stages = full_stages()
    keys = ["harvest", "transport", "sorting", "packaging", "storage", "export", "delivery"]
    for step in steps:
        lot = LotService.advance_step(lot["id"], user_id, step, stages[keys[step - 1]])
    return lot


class TestCreate:
    def test_new_lot_is_an_empty_draft(self, ctx):
        lot = _create(lotNumber="LOT-A")
        assert lot["status"] == "draft"
        assert lot["completedSteps"] == []
        assert lot["currentStep"] == 1
        assert lot["version"] == 0
        assert lot["progress"] == 0
        assert lot["assignedUsers"] == [USER_ID]
        assert lot["createdBy"] == USER_ID

    def test_lot_number_from_harvest_stage(self, ctx):
        lot = _create(stages={"harvest": {"lotNumber": "H-77"}})
        assert lot["lotNumber"] == "H-77"

    def test_lot_number_generated(self, ctx):
        lot = _create()
        assert lot["lotNumber"].startswith("LOT-")

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValueError):
            LotCreateModel(stages={"shipping": {}})


class TestAdvanceStep:
    def test_three_steps_is_43_percent_in_progress(self, ctx):
        lot = _advance(_create(), [1, 2, 3])
        assert lot["completedSteps"] == [1, 2, 3]
        assert lot["progress"] == 43
        assert lot["status"] == "in-progress"
        assert lot["currentStep"] == 4
        assert lot["version"] == 3

    def test_repeating_a_step_does_not_duplicate(self, ctx):
        lot = _advance(_create(), [1, 1, 2, 1])
        assert lot["completedSteps"] == [1, 2]

    def test_steps_out_of_order(self, ctx):
        lot = _advance(_create(), [5, 2])
        assert lot["completedSteps"] == [2, 5]
        assert lot["currentStep"] == 6

    def test_incomplete_step_writes_nothing(self, ctx, db):
        lot = _create()
        with pytest.raises(StepIncompleteError) as exc:
            LotService.advance_step(lot["id"], USER_ID, 1, {"harvestDate": "2025-01-01"})
        assert exc.value.missing == ["farmerId", "lotNumber"]
        stored = db[LOTS].find_one({"_id": parse_object_id(lot["id"])})
        assert stored["version"] == 0
        assert stored["completedSteps"] == []

    @pytest.mark.parametrize("step", [0, 8])
    def test_invalid_step_number(self, ctx, step):
        lot = _create()
        with pytest.raises(ValidationFailed):
            LotService.advance_step(lot["id"], USER_ID, step, {})

    def test_all_seven_steps_complete_and_archive(self, ctx, db):
        lot = _advance(_create(), [1, 2, 3])
        lot = _advance(lot, [4, 5, 6, 7])

        assert lot["status"] == "completed"
        assert lot["completedSteps"] == [1, 2, 3, 4, 5, 6, 7]
        assert lot["progress"] == 100
        assert lot["completedAt"]
        assert lot["archiveId"]

        archive = db[LOT_ARCHIVES].find_one({"_id": parse_object_id(lot["archiveId"])})
        assert archive["sourceLotId"] == lot["id"]
        assert archive["status"] == "archived"
        assert archive["harvest"]["lotNumber"] == "LOT-TEST-001"

    def test_auto_archive_off(self, ctx, db):
        ctx.config["LOT_AUTO_ARCHIVE"] = False
        lot = _advance(_create(), range(1, 8))
        assert lot["status"] == "completed"
        assert lot["archiveId"] is None
        assert db[LOT_ARCHIVES].count_documents({}) == 0

    def test_completed_lot_is_read_only(self, ctx):
        lot = _advance(_create(), range(1, 8))
        with pytest.raises(LotStateError):
            LotService.advance_step(lot["id"], USER_ID, 1, {})
        with pytest.raises(LotStateError):
            LotService.save_draft(lot["id"], USER_ID, LotDraftUpdateModel(stages={"sorting": {"notes": "x"}}))


class TestDraftsAndVersions:
    def test_save_draft_merges_stage_data(self, ctx):
        lot = _create()
        lot = LotService.save_draft(
            lot["id"], USER_ID, LotDraftUpdateModel(stages={"transport": {"driverName": "Omar"}})
        )
        lot = LotService.save_draft(
            lot["id"], USER_ID, LotDraftUpdateModel(stages={"transport": {"vehicleId": "V-9"}})
        )
        assert lot["transport"]["driverName"] == "Omar"
        assert lot["transport"]["vehicleId"] == "V-9"
        assert lot["status"] == "draft"
        assert lot["completedSteps"] == []

    def test_harvest_lot_number_renames_lot(self, ctx):
        lot = _create(lotNumber="OLD")
        lot = LotService.save_draft(
            lot["id"], USER_ID, LotDraftUpdateModel(stages={"harvest": {"lotNumber": "NEW"}})
        )
        assert lot["lotNumber"] == "NEW"

    def test_stale_base_version_is_rejected(self, ctx):
        lot = _create()
        LotService.save_draft(lot["id"], USER_ID, LotDraftUpdateModel(stages={"sorting": {"notes": "a"}}, baseVersion=0))
        with pytest.raises(VersionConflictError) as exc:
            LotService.save_draft(lot["id"], USER_ID, LotDraftUpdateModel(stages={"sorting": {"notes": "b"}}, baseVersion=0))
        assert exc.value.actual == 1
        assert LotService.get_lot(lot["id"], USER_ID)["sorting"]["notes"] == "a"


class TestCompleteAndArchive:
    def test_complete_with_all_data(self, ctx):
        lot = _create(stages=full_stages())
        lot = LotService.complete_lot(lot["id"], USER_ID)
        assert lot["status"] == "completed"
        assert lot["completedSteps"] == [1, 2, 3, 4, 5, 6, 7]
        assert lot["archiveId"]

    def test_complete_reports_first_incomplete_step(self, ctx):
        stages = full_stages()
        stages["storage"]["warehouseId"] = ""
        lot = _create(stages=stages)
        with pytest.raises(StepIncompleteError) as exc:
            LotService.complete_lot(lot["id"], USER_ID)
        assert exc.value.step == 5
        assert LotService.get_lot(lot["id"], USER_ID)["status"] == "draft"

    def test_complete_is_idempotent(self, ctx, db):
        lot = _create(stages=full_stages())
        first = LotService.complete_lot(lot["id"], USER_ID)
        second = LotService.complete_lot(lot["id"], USER_ID)
        assert first["archiveId"] == second["archiveId"]
        assert db[LOT_ARCHIVES].count_documents({}) == 1

    def test_archive_requires_completed_lot(self, ctx):
        lot = _advance(_create(), [1])
        with pytest.raises(LotStateError):
            LotService.archive_lot(lot["id"], USER_ID)

    def test_archive_keeps_working_copy_by_default(self, ctx):
        lot = LotService.complete_lot(_create(stages=full_stages())["id"], USER_ID)
        result = LotService.archive_lot(lot["id"], USER_ID)
        assert result["deleted"] is False
        assert result["archiveId"] == lot["archiveId"]
        assert result["lot"]["status"] == "archived"

        active = LotService.list_lots(USER_ID)
        archived = LotService.list_lots(USER_ID, scope="archived")
        assert lot["id"] not in [l["id"] for l in active]
        assert [l["id"] for l in archived] == [lot["id"]]

    def test_archive_and_delete_original(self, ctx, db):
        lot = LotService.complete_lot(_create(stages=full_stages())["id"], USER_ID)
        result = LotService.archive_lot(lot["id"], USER_ID, delete_original=True)
        assert result["deleted"] is True
        with pytest.raises(NotFoundError):
            LotService.get_lot(lot["id"], USER_ID)
        archive = LotService.get_archive(result["archiveId"], USER_ID)
        assert archive["sourceLotId"] == lot["id"]

    def test_archive_without_auto_snapshot(self, ctx, db):
        ctx.config["LOT_AUTO_ARCHIVE"] = False
        lot = LotService.complete_lot(_create(stages=full_stages())["id"], USER_ID)
        assert lot["archiveId"] is None
        result = LotService.archive_lot(lot["id"], USER_ID)
        assert db[LOT_ARCHIVES].count_documents({}) == 1
        assert result["lot"]["archiveId"] == result["archiveId"]


class TestDuplicate:
    def test_duplicate_copies_stages_and_resets_progress(self, ctx):
        src = _advance(_create(lotNumber="LOT-SRC"), range(1, 8))
        dup = LotService.duplicate_lot(src["id"], USER_ID)

        assert dup["id"] != src["id"]
        assert dup["lotNumber"] == "LOT-SRC-COPY"
        assert dup["harvest"]["lotNumber"] == "LOT-SRC-COPY"
        assert dup["status"] == "draft"
        assert dup["completedSteps"] == []
        assert dup["version"] == 0
        assert dup["archiveId"] is None
        for key in ("transport", "sorting", "packaging", "storage", "export", "delivery"):
            assert dup[key] == src[key]
        for field in ("harvestDate", "farmerId", "farmLocation", "variety"):
            assert dup["harvest"][field] == src["harvest"][field]

    def test_harvest_edit_keeps_copy_number(self, ctx):
        src = _create(stages=full_stages())
        dup = LotService.duplicate_lot(src["id"], USER_ID)
        dup = LotService.save_draft(
            dup["id"], USER_ID, LotDraftUpdateModel(stages={"harvest": {"farmLocation": "Agadir"}})
        )
        assert dup["lotNumber"] == "LOT-TEST-001-COPY"
        assert dup["harvest"]["farmLocation"] == "Agadir"


class TestVisibility:
    def test_restricted_lot_hidden_from_others(self, ctx):
        lot = _create(globallyAccessible=False)
        with pytest.raises(AccessDeniedError):
            LotService.get_lot(lot["id"], OTHER_USER_ID)
        assert LotService.list_lots(OTHER_USER_ID) == []

    def test_assigned_user_gains_access(self, ctx):
        lot = _create(globallyAccessible=False)
        LotService.add_user_to_lot(lot["id"], USER_ID, OTHER_USER_ID)
        assert LotService.get_lot(lot["id"], OTHER_USER_ID)["id"] == lot["id"]

        LotService.remove_user_from_lot(lot["id"], USER_ID, OTHER_USER_ID)
        with pytest.raises(AccessDeniedError):
            LotService.get_lot(lot["id"], OTHER_USER_ID)

    def test_adding_user_twice_is_a_noop(self, ctx):
        lot = _create()
        LotService.add_user_to_lot(lot["id"], USER_ID, OTHER_USER_ID)
        lot = LotService.add_user_to_lot(lot["id"], USER_ID, OTHER_USER_ID)
        assert lot["assignedUsers"] == [USER_ID, OTHER_USER_ID]

    def test_global_lot_visible_to_everyone(self, ctx):
        lot = _create()
        assert [l["id"] for l in LotService.list_lots(OTHER_USER_ID)] == [lot["id"]]


class TestMisc:
    def test_progress_view(self, ctx):
        stages = full_stages()
        del stages["delivery"]
        lot = _advance(_create(stages=stages), [1, 2])
        view = LotService.progress(lot["id"], USER_ID)
        assert view["progress"] == 29
        assert view["formCompletion"] == 86
        assert view["stepValidity"]["7"] is False
        assert view["stepValidity"]["1"] is True

    def test_unknown_lot(self, ctx):
        with pytest.raises(NotFoundError):
            LotService.get_lot("not-an-id", USER_ID)

    def test_unknown_scope(self, ctx):
        with pytest.raises(ValidationFailed):
            LotService.list_lots(USER_ID, scope="everything")

    def test_delete(self, ctx):
        lot = _create()
        assert LotService.delete_lot(lot["id"], USER_ID) == {"deleted": lot["id"]}
        with pytest.raises(NotFoundError):
            LotService.get_lot(lot["id"], USER_ID)


class _ArchiveDown:
    """Wraps the archive collection; inserts fail like an unreachable server."""

    def __init__(self, col):
        self.col = col

    def insert_one(self, doc):
        raise ServerSelectionTimeoutError("mongo down")

    def __getattr__(self, name):
        return getattr(self.col, name)


@pytest.fixture
def archive_down(monkeypatch):
    real = lot_service.require_col
    monkeypatch.setattr(
        lot_service, "require_col",
        lambda name: _ArchiveDown(real(name)) if name == LOT_ARCHIVES else real(name),
    )
    return real


class TestArchiveFailure:
    def test_last_step_completes_without_snapshot(self, ctx, db, archive_down):
        lot = _advance(_create(), range(1, 8))
        assert lot["status"] == "completed"
        assert lot["archiveId"] is None
        assert db[LOT_ARCHIVES].count_documents({}) == 0

    def test_snapshot_written_once_store_is_back(self, ctx, db, archive_down, monkeypatch):
        lot = _advance(_create(), range(1, 8))
        monkeypatch.setattr(lot_service, "require_col", archive_down)

        lot = LotService.complete_lot(lot["id"], USER_ID)
        assert lot["archiveId"]
        assert db[LOT_ARCHIVES].count_documents({}) == 1

    def test_explicit_archive_reports_store_error(self, ctx, archive_down):
        lot = _advance(_create(), range(1, 8))
        with pytest.raises(ServerSelectionTimeoutError):
            LotService.archive_lot(lot["id"], USER_ID)
        assert LotService.get_lot(lot["id"], USER_ID)["status"] == "completed"


class TestStepSequences:
    @settings(max_examples=60, deadline=None,
              suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(steps=st.lists(st.integers(min_value=1, max_value=TOTAL_STEPS), min_size=1, max_size=20))
    def test_invariants_hold_after_every_step(self, ctx, steps):
        lot = _create()
        seen = set()
        for step in steps:
            lot = _advance(lot, [step])
            seen.add(step)

            completed = lot["completedSteps"]
            assert len(completed) == len(set(completed)) <= TOTAL_STEPS
            assert set(completed) == seen
            assert lot["progress"] == round(len(seen) / TOTAL_STEPS * 100)
            assert (lot["status"] == "completed") == (len(completed) == TOTAL_STEPS)
            assert lot["status"] in ("in-progress", "completed")
            if len(seen) == TOTAL_STEPS:
                break
