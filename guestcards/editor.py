from __future__ import annotations

from typing import Any, Iterable, List

from .pipeline.layout import PageLayout, default_layouts, normalize_position, validate_layout, validate_layouts


class LayoutEditor:
    """
    State of one interactive placement session.

    Drag state and the lock flag only matter here; the batch pipeline never
    sees in-progress coordinates, only the layouts returned by finish().
    """

    def __init__(self, layouts: Iterable[PageLayout] | None = None, page_count: int | None = None) -> None:
        if layouts is None:
            if page_count is None:
                raise ValueError("Pass either layouts or page_count")
            layouts = default_layouts(page_count)
        self._layouts: List[PageLayout] = validate_layouts(layouts)
        self.current_index = 0
        self.dragging = False

    @property
    def page_count(self) -> int:
        return len(self._layouts)

    @property
    def current(self) -> PageLayout:
        return self._layouts[self.current_index]

    def go_to(self, index: int) -> None:
        if not 0 <= index < self.page_count:
            raise IndexError(f"No page at index {index}")
        self.current_index = index
        self.dragging = False

    def next_page(self) -> None:
        if self.current_index < self.page_count - 1:
            self.go_to(self.current_index + 1)

    def previous_page(self) -> None:
        if self.current_index > 0:
            self.go_to(self.current_index - 1)

    def update(self, **changes: Any) -> PageLayout:
        """Apply control-panel edits (font, color, spacing...) to the current page."""
        record = {**self.current.to_dict(), **changes}
        record["pageNumber"] = self.current.page_number
        self._layouts[self.current_index] = validate_layout(record)
        return self.current

    def set_enabled(self, enabled: bool) -> PageLayout:
        return self.update(enabled=enabled)

    def toggle_lock(self) -> PageLayout:
        self.dragging = False
        return self.update(locked=not self.current.locked)

    def begin_drag(self) -> bool:
        if self.current.locked or not self.current.enabled:
            return False
        self.dragging = True
        return True

    def drag_to(self, x_px: float, y_px: float, width: float, height: float) -> bool:
        """Move the anchor; ignored when no drag is active or the page is locked."""
        if not self.dragging or self.current.locked or not self.current.enabled:
            return False
        self.update(position=list(normalize_position(x_px, y_px, width, height)))
        return True

    def end_drag(self) -> None:
        self.dragging = False

    def finish(self) -> List[PageLayout]:
        self.dragging = False
        return validate_layouts(self._layouts)
