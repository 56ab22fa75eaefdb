"""
tree.py - Group loaded instances for the tree panel.

Two presentations are offered: a flat file list, and the DICOM
information model hierarchy

    Patient -> Study -> Series -> SOP Instance

keyed on PatientID, StudyInstanceUID, SeriesInstanceUID and
SOPInstanceUID.  Patient, study and series nodes can be collapsed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from dicomancer.loader import DicomEntry

EXPANDED = "▼"
COLLAPSED = "▶"
SELECTED = "▶"


class TreeViewMode(Enum):
    FILE_BROWSER = "file_browser"
    UID_TREE = "uid_tree"


@dataclass(frozen=True)
class TreeNodeKey:
    """Identifies a collapsible node; unset levels are None."""
    patient: str
    study: Optional[str] = None
    series: Optional[str] = None

    @classmethod
    def for_patient(cls, patient: str) -> "TreeNodeKey":
        return cls(patient)

    @classmethod
    def for_study(cls, patient: str, study: str) -> "TreeNodeKey":
        return cls(patient, study)

    @classmethod
    def for_series(cls, patient: str, study: str, series: str) -> "TreeNodeKey":
        return cls(patient, study, series)


@dataclass
class TreeRow:
    """One line of the tree panel.

    ``key`` is set on collapsible nodes, ``index`` on selectable instances.
    """
    depth: int
    label: str
    key: Optional[TreeNodeKey] = None
    index: Optional[int] = None
    selected: bool = False


def _sort_nested(node):
    if isinstance(node, dict):
        return {k: _sort_nested(node[k]) for k in sorted(node)}
    return node


def group_entries(entries: Sequence[DicomEntry]) -> dict:
    """
    Nest entry indices as patient -> study -> series -> SOP -> [indices].

    Every level is sorted by key.  Duplicate SOP Instance UIDs keep all of
    their indices, in load order.
    """
    grouped: dict = {}
    for idx, entry in enumerate(entries):
        (
            grouped.setdefault(entry.patient_id, {})
            .setdefault(entry.study_instance_uid, {})
            .setdefault(entry.series_instance_uid, {})
            .setdefault(entry.sop_instance_uid, [])
            .append(idx)
        )
    return _sort_nested(grouped)


def _instance_label(label: str, selected: bool) -> str:
    return f"{SELECTED} {label}" if selected else label


def _file_rows(entries: Sequence[DicomEntry], selected: Optional[int]) -> list[TreeRow]:
    return [
        TreeRow(
            depth=0,
            label=_instance_label(entry.view.file_path, idx == selected),
            index=idx,
            selected=idx == selected,
        )
        for idx, entry in enumerate(entries)
    ]


def _uid_rows(
    entries: Sequence[DicomEntry],
    collapsed: set,
    selected: Optional[int],
) -> list[TreeRow]:
    def arrow(key: TreeNodeKey) -> str:
        return COLLAPSED if key in collapsed else EXPANDED

    rows: list[TreeRow] = []
    for patient_id, studies in group_entries(entries).items():
        patient_key = TreeNodeKey.for_patient(patient_id)
        rows.append(TreeRow(0, f"{arrow(patient_key)} PatientID: {patient_id}", key=patient_key))
        if patient_key in collapsed:
            continue

        for study_uid, series_map in studies.items():
            study_key = TreeNodeKey.for_study(patient_id, study_uid)
            rows.append(
                TreeRow(1, f"{arrow(study_key)} StudyInstanceUID: {study_uid}", key=study_key)
            )
            if study_key in collapsed:
                continue

            for series_uid, sop_map in series_map.items():
                series_key = TreeNodeKey.for_series(patient_id, study_uid, series_uid)
                rows.append(
                    TreeRow(
                        2,
                        f"{arrow(series_key)} SeriesInstanceUID: {series_uid}",
                        key=series_key,
                    )
                )
                if series_key in collapsed:
                    continue

                for sop_uid, indices in sop_map.items():
                    for index in indices:
                        is_selected = index == selected
                        rows.append(
                            TreeRow(
                                3,
                                _instance_label(f"SOPInstanceUID: {sop_uid}", is_selected),
                                index=index,
                                selected=is_selected,
                            )
                        )
    return rows


def build_tree_rows(
    entries: Sequence[DicomEntry],
    mode: TreeViewMode,
    collapsed: Optional[set] = None,
    selected: Optional[int] = None,
) -> list[TreeRow]:
    """
    Flatten *entries* into display rows for the given *mode*.

    Parameters
    ----------
    entries : sequence of DicomEntry
        Loaded instances, indexed by position.
    mode : TreeViewMode
        File list or UID hierarchy.
    collapsed : set of TreeNodeKey, optional
        Nodes whose children are hidden (UID mode only).
    selected : int, optional
        Index of the selected instance.

    Returns
    -------
    list[TreeRow]
    """
    if not entries:
        return [TreeRow(0, "No files imported")]
    if mode is TreeViewMode.FILE_BROWSER:
        return _file_rows(entries, selected)
    return _uid_rows(entries, collapsed or set(), selected)
