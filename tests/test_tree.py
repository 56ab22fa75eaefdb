"""Tests for dicomancer/tree.py."""

from dicomancer.loader import DicomEntry, DicomView
from dicomancer.tree import (
    TreeNodeKey,
    TreeViewMode,
    build_tree_rows,
    group_entries,
)


def _make_entry(patient: str, study: str, series: str, sop: str, path: str = "") -> DicomEntry:
    return DicomEntry(
        patient_id=patient,
        study_instance_uid=study,
        series_instance_uid=series,
        sop_instance_uid=sop,
        view=DicomView(file_path=path or f"/data/{sop}.dcm", metadata=[]),
    )


def _entries() -> list[DicomEntry]:
    return [
        _make_entry("P2", "S1", "SE1", "I3"),
        _make_entry("P1", "S2", "SE1", "I2"),
        _make_entry("P1", "S1", "SE1", "I1"),
    ]


class TestGroupEntries:
    def test_nested_and_sorted(self):
        grouped = group_entries(_entries())
        assert list(grouped) == ["P1", "P2"]
        assert list(grouped["P1"]) == ["S1", "S2"]
        assert grouped["P1"]["S1"]["SE1"] == {"I1": [2]}
        assert grouped["P2"]["S1"]["SE1"] == {"I3": [0]}

    def test_duplicate_sop_keeps_all_indices(self):
        entries = [_make_entry("P", "S", "SE", "I"), _make_entry("P", "S", "SE", "I")]
        assert group_entries(entries)["P"]["S"]["SE"]["I"] == [0, 1]


class TestBuildTreeRows:
    def test_empty(self):
        rows = build_tree_rows([], TreeViewMode.UID_TREE)
        assert [r.label for r in rows] == ["No files imported"]
        assert rows[0].index is None and rows[0].key is None

    def test_file_browser_lists_paths_in_load_order(self):
        rows = build_tree_rows(_entries(), TreeViewMode.FILE_BROWSER)
        assert [r.label for r in rows] == ["/data/I3.dcm", "/data/I2.dcm", "/data/I1.dcm"]
        assert [r.index for r in rows] == [0, 1, 2]

    def test_file_browser_marks_selection(self):
        rows = build_tree_rows(_entries(), TreeViewMode.FILE_BROWSER, selected=1)
        assert rows[1].label == "▶ /data/I2.dcm"
        assert rows[1].selected
        assert not rows[0].selected

    def test_uid_tree_hierarchy(self):
        rows = build_tree_rows(_entries(), TreeViewMode.UID_TREE)
        assert [(r.depth, r.label) for r in rows] == [
            (0, "▼ PatientID: P1"),
            (1, "▼ StudyInstanceUID: S1"),
            (2, "▼ SeriesInstanceUID: SE1"),
            (3, "SOPInstanceUID: I1"),
            (1, "▼ StudyInstanceUID: S2"),
            (2, "▼ SeriesInstanceUID: SE1"),
            (3, "SOPInstanceUID: I2"),
            (0, "▼ PatientID: P2"),
            (1, "▼ StudyInstanceUID: S1"),
            (2, "▼ SeriesInstanceUID: SE1"),
            (3, "SOPInstanceUID: I3"),
        ]

    def test_uid_tree_rows_carry_keys_and_indices(self):
        rows = build_tree_rows(_entries(), TreeViewMode.UID_TREE)
        assert rows[0].key == TreeNodeKey.for_patient("P1")
        assert rows[1].key == TreeNodeKey.for_study("P1", "S1")
        assert rows[2].key == TreeNodeKey.for_series("P1", "S1", "SE1")
        assert rows[3].index == 2

    def test_collapsed_patient_hides_children(self):
        collapsed = {TreeNodeKey.for_patient("P1")}
        rows = build_tree_rows(_entries(), TreeViewMode.UID_TREE, collapsed=collapsed)
        assert rows[0].label == "▶ PatientID: P1"
        assert rows[1].label == "▼ PatientID: P2"
        assert len(rows) == 5

    def test_collapsed_series_hides_instances_only(self):
        collapsed = {TreeNodeKey.for_series("P2", "S1", "SE1")}
        rows = build_tree_rows(_entries(), TreeViewMode.UID_TREE, collapsed=collapsed)
        assert rows[-1].label == "▶ SeriesInstanceUID: SE1"
        assert all(r.label != "SOPInstanceUID: I3" for r in rows)

    def test_same_series_uid_under_different_studies_is_distinct(self):
        collapsed = {TreeNodeKey.for_series("P1", "S1", "SE1")}
        rows = build_tree_rows(_entries(), TreeViewMode.UID_TREE, collapsed=collapsed)
        labels = [r.label for r in rows]
        assert "SOPInstanceUID: I1" not in labels
        assert "SOPInstanceUID: I2" in labels

    def test_uid_tree_marks_selection(self):
        rows = build_tree_rows(_entries(), TreeViewMode.UID_TREE, selected=0)
        assert rows[-1].label == "▶ SOPInstanceUID: I3"
        assert rows[-1].selected
