from __future__ import annotations

from weighbridge.models.mix_reference import MixReferenceEntry
from weighbridge.normalize.mix_reference import MixReferenceIndex, build_mix_reference, normalize_mix_key


def test_normalize_mix_key():
    assert normalize_mix_key("AC-Wearing (60/70)") == "ACWEARING6070"
    assert normalize_mix_key(" ac wearing 60/70 ") == "ACWEARING6070"
    assert normalize_mix_key("Base_Course [B]") == "BASECOURSEB"
    assert normalize_mix_key(None) == ""


def test_build_mix_reference_from_sheet_rows():
    rows = [
        ["", "", ""],
        ["code", "projectName", "mixName"],
        ["prj001", "Highway 7", "AC-Wearing (60/70)"],
        ["", "no code", "skipped"],
        ["PRJ002", "", "Base Course"],
    ]
    index = build_mix_reference(rows)
    assert len(index) == 2
    assert index.project_name("prj001") == "Highway 7"
    # project name falls back to the mix name
    assert index.project_name("PRJ002") == "Base Course"
    entry = index.match_mix("ac wearing 60/70")
    assert entry is not None and entry.code == "PRJ001"


def test_build_mix_reference_inherits_single_transaction_alias():
    rows = [["Code", "Name", "Job Mix"], ["P1", "Road", "AC"]]
    index = build_mix_reference(rows, fallback_alias_id="C001")
    (entry,) = index.entries
    assert entry.scope_alias_id == "C001"
    assert entry.scope_key == "id:c001"


def test_scoped_lookup_prefers_alias_then_unscoped():
    index = MixReferenceIndex()
    index.add(MixReferenceEntry(code="P1", project_name="Road A", mix_name="AC", scope_alias_id="A"))
    index.add(MixReferenceEntry(code="P2", project_name="Road B", mix_name="AC", scope_alias_id="B"))
    index.add(MixReferenceEntry(code="P3", project_name="Yard", mix_name="BASE", scope_alias_name="Site Co"))
    index.add(MixReferenceEntry(code="P4", project_name="Depot", mix_name="AC"))

    assert index.match_mix("AC", alias_id="b").code == "P2"
    assert index.match_mix("AC", alias_id="Z").code == "P4"
    assert index.match_mix("base", alias_name="site co").code == "P3"
    assert index.match_mix("unknown mix") is None
    assert index.project_name("P2", alias_id="B") == "Road B"
    assert index.project_name("P4", alias_id="Z") == "Depot"
    assert index.project_name("P9") is None


def test_scoped_entry_is_invisible_to_other_aliases():
    index = MixReferenceIndex()
    index.add(
        MixReferenceEntry(code="ABC001", project_name="ABC private site", mix_name="AC-W", scope_alias_id="C001")
    )

    assert index.match_mix("AC-W", alias_id="C001").code == "ABC001"
    assert index.match_mix("AC-W", alias_id="C999") is None
    assert index.match_mix("AC-W") is None
    assert index.project_name("ABC001", alias_id="C999") is None
    assert index.project_name("ABC001", alias_name="ABC Co") is None


def test_first_write_wins_within_scope():
    index = MixReferenceIndex()
    index.add(MixReferenceEntry(code="P1", project_name="First", mix_name="AC"))
    index.add(MixReferenceEntry(code="P1", project_name="Second", mix_name="AC"))
    assert index.project_name("P1") == "First"
    assert len(index) == 1
