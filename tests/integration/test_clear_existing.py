from __future__ import annotations

from conftest import HEADERS, build_workbook, make_row

from weighbridge.models.transaction import PersistedTransaction
from weighbridge.services.aggregation import summarize
from weighbridge.services.orchestrator import import_workbook


def _corrected_export() -> bytes:
    """The 15 March Stone rows re-exported with the 10 t ticket corrected to 12 t."""
    return build_workbook(
        {
            "ALL DATA": [
                HEADERS,
                ["15/03/2568", "BUY", "Stone", None, 5, "TON", "ABC Co", "C001", None],
                ["15/03/2568", "BUY", "Stone", None, 12, "TON", "ABC Co", "C001", None],
                ["15/03/2568", "BUY", "Stone", None, 15, "TON", "ABC Co", "C001", None],
            ]
        }
    )


def test_corrected_export_without_clear_double_counts(stone_workbook, repository):
    import_workbook(stone_workbook, repository)
    import_workbook(_corrected_export(), repository)
    assert summarize(repository, "t1", "2025-03-15").inbound.total_tons == 42.0


def test_clear_existing_replaces_the_date_range(stone_workbook, repository):
    import_workbook(stone_workbook, repository)
    result = import_workbook(_corrected_export(), repository, clear_existing=True)
    assert result.cleared == 3
    assert result.inserted == 3
    assert summarize(repository, "t1", "2025-03-15").inbound.total_tons == 32.0


def test_clear_existing_leaves_other_days_and_aliases(stone_workbook, repository):
    other_day = make_row(tons=4.0, date_str="2025-03-16", weigh_number="X")
    other_alias = make_row(tons=6.0, alias_id="Z9", alias_name="Other")
    repository.insert_transactions(
        [PersistedTransaction.bind(other_day, "t1"), PersistedTransaction.bind(other_alias, None)]
    )
    import_workbook(stone_workbook, repository)

    import_workbook(_corrected_export(), repository, clear_existing=True)

    assert summarize(repository, "t1", "2025-03-16").inbound.total_tons == 4.0
    assert any(t.row.source_alias_id == "Z9" for t in repository.transactions.values())


def test_clear_existing_with_no_valid_rows_deletes_nothing(stone_workbook, repository, make_workbook):
    import_workbook(stone_workbook, repository)
    empty = make_workbook({"ALL DATA": [HEADERS, ["not a date", "BUY", "Stone", None, 1, "TON", "ABC Co", "C001", None]]})
    result = import_workbook(empty, repository, clear_existing=True)
    assert (result.cleared, result.inserted, result.dropped) == (0, 0, 1)
    assert len(repository.transactions) == 3
