"""
viewer.py - matplotlib window for browsing loaded DICOM instances.

Layout (left to right):

    tree panel      clickable rows; click a node to collapse it, an
                    instance to select it, the mode header to switch
                    between file list and UID tree
    metadata panel  tag / VR / keyword / value table, scrolled with the
                    up and down keys
    image panel     the first frame as rendered by the image pipeline

Keys: ``t`` toggles the tree mode, left/right select the previous/next
instance.
"""

import logging
from typing import Any, Optional

import matplotlib.pyplot as plt
from matplotlib.text import Text

from dicomancer.config import CONFIG
from dicomancer.state import ViewerState
from dicomancer.tree import TreeRow, TreeViewMode

logger = logging.getLogger(__name__)

# Consistent figure style across all panels
plt.rcParams.update({"figure.dpi": 100, "axes.titlesize": 11})

_INDENT = 0.06
_ROW_STEP = 0.035
_MODE_LABELS = {
    TreeViewMode.FILE_BROWSER: "File browser",
    TreeViewMode.UID_TREE: "UID tree",
}


class ViewerWindow:
    """Draws a ViewerState and feeds mouse/key events back into it."""

    def __init__(self, state: ViewerState, config: Optional[dict[str, Any]] = None) -> None:
        self.state = state
        self.config = config or CONFIG["viewer"]
        self.metadata_offset = 0

        self.fig = plt.figure(figsize=tuple(self.config["figure_size"]))
        if self.fig.canvas.manager is not None:
            self.fig.canvas.manager.set_window_title(self.config["title"])
        grid = self.fig.add_gridspec(1, 3, width_ratios=[2, 5, 3])
        self.tree_ax = self.fig.add_subplot(grid[0, 0])
        self.meta_ax = self.fig.add_subplot(grid[0, 1])
        self.image_ax = self.fig.add_subplot(grid[0, 2])
        self._error_text: Optional[Text] = None
        self._mode_text: Optional[Text] = None
        self._row_artists: dict[Text, TreeRow] = {}

        self.fig.canvas.mpl_connect("pick_event", self._on_pick)
        self.fig.canvas.mpl_connect("key_press_event", self._on_key)
        self.redraw()

    # -- drawing ------------------------------------------------------------

    def redraw(self) -> None:
        self._draw_tree()
        self._draw_metadata()
        self._draw_image()
        self._draw_error()
        self.fig.canvas.draw_idle()

    def _draw_tree(self) -> None:
        ax = self.tree_ax
        ax.clear()
        ax.axis("off")
        ax.set_title("Imported Instances", loc="left")
        self._row_artists = {}

        toggle = " | ".join(
            f"[{label}]" if mode is self.state.tree_view_mode else label
            for mode, label in _MODE_LABELS.items()
        )
        self._mode_text = ax.text(
            0.0, 1.0, toggle, transform=ax.transAxes, va="top", fontsize=9, picker=True,
        )

        y = 1.0 - 2 * _ROW_STEP
        for row in self.state.tree_rows():
            artist = ax.text(
                row.depth * _INDENT, y, row.label,
                transform=ax.transAxes,
                va="top",
                fontsize=8,
                fontweight="bold" if row.selected else "normal",
                picker=row.key is not None or row.index is not None,
                clip_on=True,
            )
            self._row_artists[artist] = row
            y -= _ROW_STEP

    def _draw_metadata(self) -> None:
        ax = self.meta_ax
        ax.clear()
        ax.axis("off")
        view = self.state.selected_view

        if view is None:
            message = (
                "Import DICOM files to get started"
                if not self.state.entries
                else "Select an instance to see its metadata"
            )
            ax.text(0.5, 0.5, message, ha="center", va="center", transform=ax.transAxes)
            return

        ax.set_title(view.file_path, loc="left")
        if not view.metadata:
            ax.text(0.5, 0.5, "No metadata", ha="center", va="center", transform=ax.transAxes)
            return

        visible = self.config["metadata_rows"]
        start = self.metadata_offset
        rows = view.metadata[start:start + visible]
        table = ax.table(
            cellText=[[r.tag, r.vr, r.alias, r.value] for r in rows],
            colLabels=["Tag", "VR", "Alias", "Value"],
            colWidths=[0.12, 0.06, 0.27, 0.55],
            cellLoc="left",
            loc="upper left",
        )
        table.auto_set_font_size(False)
        table.set_fontsize(7)
        ax.text(
            0.0, 0.0,
            f"rows {start + 1}-{start + len(rows)} of {len(view.metadata)}",
            transform=ax.transAxes, fontsize=8, va="top",
        )

    def _draw_image(self) -> None:
        ax = self.image_ax
        ax.clear()
        ax.axis("off")
        view = self.state.selected_view
        if view is None or view.image is None:
            ax.text(0.5, 0.5, "No image available", ha="center", va="center",
                    transform=ax.transAxes)
            return
        ax.imshow(view.image.to_array())
        ax.set_title(f"{view.image.width} x {view.image.height}")

    def _draw_error(self) -> None:
        if self._error_text is not None:
            self._error_text.remove()
            self._error_text = None
        if self.state.last_error:
            self._error_text = self.fig.text(
                0.01, 0.01, self.state.last_error, color="tab:red", fontsize=9, wrap=True,
            )

    # -- events -------------------------------------------------------------

    def _on_pick(self, event) -> None:
        if event.artist is self._mode_text:
            self.state.toggle_tree_view_mode()
        else:
            row = self._row_artists.get(event.artist)
            if row is None:
                return
            if row.key is not None:
                self.state.toggle_node(row.key)
            elif row.index is not None:
                self.state.select_instance(row.index)
                self.metadata_offset = 0
        self.redraw()

    def _on_key(self, event) -> None:
        previous = self.state.selected_instance
        if event.key == "t":
            self.state.toggle_tree_view_mode()
        elif event.key == "right":
            self.state.select_next()
        elif event.key == "left":
            self.state.select_previous()
        elif event.key == "down":
            self._scroll(self.config["metadata_rows"])
        elif event.key == "up":
            self._scroll(-self.config["metadata_rows"])
        else:
            return
        if self.state.selected_instance != previous:
            self.metadata_offset = 0
        self.redraw()

    def _scroll(self, delta: int) -> None:
        view = self.state.selected_view
        if view is None:
            return
        last_page = max(len(view.metadata) - self.config["metadata_rows"], 0)
        self.metadata_offset = min(max(self.metadata_offset + delta, 0), last_page)

    def show(self) -> None:
        plt.show()
