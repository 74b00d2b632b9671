"""Page-break decisions threaded through an explicit ``LayoutState``."""
from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional

from chat_renderer.model.elements import BlockType, LayoutState, MeasuredBlock
from chat_renderer.parser.block_measurer import DEFAULT_GEOMETRY, PageGeometry
from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

# Float noise allowance when comparing accumulated millimetre positions.
EPSILON_MM = 1e-6

PageSink = Callable[[], None]
PageStartHook = Callable[[LayoutState], None]


class BreakDecision(str, Enum):
    STAY = "stay"
    NEW_PAGE = "new-page"
    SPLIT = "split"


class PageLayout:
    """Decide where blocks go; owns no document state beyond the page callbacks."""

    def __init__(self, geometry: PageGeometry = DEFAULT_GEOMETRY, on_new_page: Optional[PageSink] = None) -> None:
        self._geometry = geometry
        self._on_new_page = on_new_page
        self._page_start_hooks: List[PageStartHook] = []

    @property
    def geometry(self) -> PageGeometry:
        return self._geometry

    @property
    def page_bottom(self) -> float:
        return self._geometry.page_height - self._geometry.margin_bottom

    def new_state(self) -> LayoutState:
        return LayoutState(current_y=self._geometry.margin_top)

    # ------------------------------------------------------------------
    # Space queries
    def available_space(self, state: LayoutState) -> float:
        return self.page_bottom - state.current_y

    def needs_new_page(self, y: float, height: float) -> bool:
        return y + height > self.page_bottom + EPSILON_MM

    def is_at_page_top(self, state: LayoutState) -> bool:
        return state.current_y <= self._geometry.margin_top + EPSILON_MM

    # ------------------------------------------------------------------
    # Page transitions
    def push_page_start_hook(self, hook: PageStartHook) -> None:
        self._page_start_hooks.append(hook)

    def pop_page_start_hook(self) -> None:
        self._page_start_hooks.pop()

    def add_new_page(self, state: LayoutState) -> float:
        """Finish the current page and move the cursor to the top of the next one."""
        if self._on_new_page is not None:
            self._on_new_page()
        state.page_number += 1
        state.current_y = self._geometry.margin_top
        for hook in list(self._page_start_hooks):
            hook(state)
        LOGGER.debug("Started page %d", state.page_number)
        return state.current_y

    # ------------------------------------------------------------------
    # Break decisions
    def smart_page_break(self, state: LayoutState, measured: MeasuredBlock) -> BreakDecision:
        """Pure decision for one block at the current cursor."""
        if measured.height <= self.available_space(state) + EPSILON_MM:
            return BreakDecision.STAY
        if not measured.can_break or measured.height <= self._geometry.content_height + EPSILON_MM:
            if self.is_at_page_top(state):
                # Oversized and unsplittable: a fresh page cannot hold it either.
                return BreakDecision.STAY
            return BreakDecision.NEW_PAGE
        return BreakDecision.SPLIT

    def place(
        self,
        state: LayoutState,
        measured: MeasuredBlock,
        following: Optional[MeasuredBlock] = None,
    ) -> BreakDecision:
        """Apply the break decision for ``measured`` and update ``state`` in place.

        A heading advances when it cannot fit together with the start of the
        block that follows it, and the block after a heading never advances
        on its own, so no page boundary lands between the two.
        """
        keep_with_previous = state.keep_with_previous
        state.keep_with_previous = False

        if measured.block.type is BlockType.HEADING:
            needed = measured.height + self._follower_requirement(following)
            decision = BreakDecision.STAY
            if needed > self.available_space(state) + EPSILON_MM and not self.is_at_page_top(state):
                self.add_new_page(state)
                decision = BreakDecision.NEW_PAGE
            state.keep_with_previous = following is not None
            return decision

        if keep_with_previous:
            fits = measured.height <= self.available_space(state) + EPSILON_MM
            if fits:
                return BreakDecision.STAY
            if measured.can_break:
                return BreakDecision.SPLIT

        decision = self.smart_page_break(state, measured)
        if decision is BreakDecision.NEW_PAGE:
            self.add_new_page(state)
        return decision

    def _follower_requirement(self, following: Optional[MeasuredBlock]) -> float:
        if following is None or following.height <= 0:
            return 0.0
        if following.can_break:
            return following.min_height if following.min_height is not None else self._geometry.body_line_height
        return following.height
