"""
state.py - Viewer application state.

Holds everything the UI renders from and applies user actions to it.
No drawing happens here, so the behaviour can be exercised without a
display.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from dicomancer.loader import DicomEntry, DicomView, LoadReport
from dicomancer.tree import TreeNodeKey, TreeRow, TreeViewMode, build_tree_rows

logger = logging.getLogger(__name__)


@dataclass
class ViewerState:
    entries: list[DicomEntry] = field(default_factory=list)
    selected_instance: Optional[int] = None
    collapsed_nodes: set[TreeNodeKey] = field(default_factory=set)
    tree_view_mode: TreeViewMode = TreeViewMode.FILE_BROWSER
    last_error: Optional[str] = None

    def files_loaded(self, report: LoadReport) -> None:
        """
        Append the entries of *report* and select the last one loaded.

        Errors from the batch replace ``last_error``; a batch without
        errors clears it.
        """
        for entry in report.entries:
            self.entries.append(entry)
            self.selected_instance = len(self.entries) - 1

        errors = report.errors
        if errors:
            self.last_error = "\n".join(errors)
        else:
            if not self.entries:
                self.selected_instance = None
            self.last_error = None

    def select_instance(self, index: int) -> None:
        if 0 <= index < len(self.entries):
            self.selected_instance = index
        else:
            logger.debug("Ignoring selection of unknown instance %d", index)

    def select_next(self) -> None:
        if not self.entries:
            return
        current = -1 if self.selected_instance is None else self.selected_instance
        self.selected_instance = min(current + 1, len(self.entries) - 1)

    def select_previous(self) -> None:
        if not self.entries:
            return
        current = 0 if self.selected_instance is None else self.selected_instance
        self.selected_instance = max(current - 1, 0)

    def toggle_node(self, key: TreeNodeKey) -> None:
        if key in self.collapsed_nodes:
            self.collapsed_nodes.remove(key)
        else:
            self.collapsed_nodes.add(key)

    def set_tree_view_mode(self, mode: TreeViewMode) -> None:
        self.tree_view_mode = mode

    def toggle_tree_view_mode(self) -> None:
        if self.tree_view_mode is TreeViewMode.FILE_BROWSER:
            self.tree_view_mode = TreeViewMode.UID_TREE
        else:
            self.tree_view_mode = TreeViewMode.FILE_BROWSER

    @property
    def selected_view(self) -> Optional[DicomView]:
        if self.selected_instance is None or self.selected_instance >= len(self.entries):
            return None
        return self.entries[self.selected_instance].view

    def tree_rows(self) -> list[TreeRow]:
        return build_tree_rows(
            self.entries,
            self.tree_view_mode,
            self.collapsed_nodes,
            self.selected_instance,
        )
