import csv
import io

from avotrace.services.lots.lot_export import CSV_HEADER, lot_report_pdf, lots_to_csv
from avotrace.services.lots.lot_labels import lot_qr_png

from tests.helpers import full_stages


def _lot(**extra):
    lot = {"lotNumber": "LOT-9", "status": "in-progress", "completedSteps": [1, 2, 3], **full_stages()}
    lot.update(extra)
    return lot


class TestCsv:
    def test_header_only_when_empty(self):
        assert lots_to_csv([]) == ",".join(CSV_HEADER) + "\n"

    def test_one_row_per_lot(self):
        rows = list(csv.reader(io.StringIO(lots_to_csv([_lot(), _lot(lotNumber="LOT-10")]))))
        assert len(rows) == 3
        row = dict(zip(rows[0], rows[1]))
        assert row["Lot Number"] == "LOT-9"
        assert row["Progress (%)"] == "43"
        assert row["Container ID"] == "MSCU1234567"
        assert row["Actual Delivery"] == ""

    def test_values_with_commas_are_quoted(self):
        lot = _lot()
        lot["harvest"]["farmLocation"] = "Larache, Morocco"
        rows = list(csv.reader(io.StringIO(lots_to_csv([lot]))))
        assert dict(zip(rows[0], rows[1]))["Farm Location"] == "Larache, Morocco"


class TestRenderedDocuments:
    def test_report_is_a_pdf(self):
        assert lot_report_pdf(_lot()).startswith(b"%PDF")

    def test_report_handles_empty_lot(self):
        assert lot_report_pdf({"lotNumber": "EMPTY"}).startswith(b"%PDF")

    def test_qr_is_a_png(self):
        assert lot_qr_png("LOT-9", "http://avotrace.test/api/lots/1").startswith(b"\x89PNG")
