"""Tests for page-break decisions."""
import math
import unittest
from unittest.mock import Mock

from chat_renderer.model.elements import BlockType, ContentBlock, MeasuredBlock
from chat_renderer.parser.block_measurer import PageGeometry
from chat_renderer.parser.page_layout import BreakDecision, PageLayout


def measured(height, can_break=False, block_type=BlockType.PARAGRAPH, min_height=None):
    return MeasuredBlock(block=ContentBlock(type=block_type), height=height, can_break=can_break, min_height=min_height)


class PageLayoutTest(unittest.TestCase):
    """Exercise the break rules on the default A4 geometry."""

    def setUp(self) -> None:
        self.geometry = PageGeometry()
        self.sink = Mock()
        self.layout = PageLayout(self.geometry, on_new_page=self.sink)
        self.state = self.layout.new_state()

    def test_fresh_state_starts_at_top_margin(self) -> None:
        self.assertEqual(self.state.current_y, 25.0)
        self.assertEqual(self.state.page_number, 1)
        self.assertEqual(self.layout.page_bottom, 272.0)
        self.assertTrue(self.layout.is_at_page_top(self.state))

    def test_block_that_fits_stays(self) -> None:
        self.assertEqual(self.layout.smart_page_break(self.state, measured(30.0)), BreakDecision.STAY)

    def test_block_that_fits_a_fresh_page_moves(self) -> None:
        self.state.current_y = 260.0
        self.assertEqual(self.layout.smart_page_break(self.state, measured(20.0, can_break=True)), BreakDecision.NEW_PAGE)

    def test_oversized_breakable_block_splits(self) -> None:
        self.state.current_y = 100.0
        self.assertEqual(self.layout.smart_page_break(self.state, measured(400.0, can_break=True)), BreakDecision.SPLIT)

    def test_oversized_unbreakable_block(self) -> None:
        block = measured(400.0)
        self.assertEqual(self.layout.smart_page_break(self.state, block), BreakDecision.STAY)
        self.state.current_y = 100.0
        self.assertEqual(self.layout.smart_page_break(self.state, block), BreakDecision.NEW_PAGE)

    def test_decision_is_pure(self) -> None:
        self.state.current_y = 260.0
        self.layout.smart_page_break(self.state, measured(20.0))
        self.assertEqual(self.state.current_y, 260.0)
        self.assertEqual(self.state.page_number, 1)
        self.sink.assert_not_called()

    def test_place_advances_page(self) -> None:
        self.state.current_y = 260.0
        decision = self.layout.place(self.state, measured(20.0))

        self.assertEqual(decision, BreakDecision.NEW_PAGE)
        self.assertEqual(self.state.page_number, 2)
        self.assertEqual(self.state.current_y, 25.0)
        self.sink.assert_called_once_with()

    def test_heading_moves_with_its_follower(self) -> None:
        self.state.current_y = 255.0
        heading = measured(12.0, block_type=BlockType.HEADING)
        follower = measured(40.0, can_break=True, min_height=6.0)

        self.assertEqual(self.layout.place(self.state, heading, follower), BreakDecision.NEW_PAGE)
        self.assertEqual(self.state.page_number, 2)
        self.assertTrue(self.state.keep_with_previous)

        self.assertEqual(self.layout.place(self.state, follower), BreakDecision.STAY)
        self.assertFalse(self.state.keep_with_previous)

    def test_heading_stays_when_follower_start_fits(self) -> None:
        self.state.current_y = 200.0
        heading = measured(12.0, block_type=BlockType.HEADING)
        follower = measured(200.0, can_break=True, min_height=6.0)

        self.assertEqual(self.layout.place(self.state, heading, follower), BreakDecision.STAY)
        self.state.current_y += 12.0
        self.assertEqual(self.layout.place(self.state, follower), BreakDecision.SPLIT)
        self.assertEqual(self.state.page_number, 1)
        self.sink.assert_not_called()

    def test_heading_with_unbreakable_follower(self) -> None:
        self.state.current_y = 210.0
        heading = measured(12.0, block_type=BlockType.HEADING)
        image = measured(60.0)
        self.assertEqual(self.layout.place(self.state, heading, image), BreakDecision.NEW_PAGE)

    def test_heading_at_page_top_never_advances(self) -> None:
        heading = measured(12.0, block_type=BlockType.HEADING)
        self.assertEqual(self.layout.place(self.state, heading, measured(400.0)), BreakDecision.STAY)
        self.assertEqual(self.state.page_number, 1)

    def test_page_start_hooks_run_on_new_page(self) -> None:
        calls = []

        def hook(state):
            calls.append(state.page_number)
            state.current_y += 5.0

        self.layout.push_page_start_hook(hook)
        self.assertEqual(self.layout.add_new_page(self.state), 30.0)
        self.layout.pop_page_start_hook()
        self.layout.add_new_page(self.state)

        self.assertEqual(calls, [2])
        self.assertEqual(self.state.current_y, 25.0)

    def test_page_count_bounded_by_content(self) -> None:
        heights = [20.0] * 30
        for height in heights:
            block = measured(height)
            self.layout.place(self.state, block)
            self.state.current_y += height

        per_page = math.floor(self.geometry.content_height / 20.0)
        self.assertEqual(self.state.page_number, math.ceil(len(heights) / per_page))
        self.assertEqual(self.sink.call_count, self.state.page_number - 1)


if __name__ == "__main__":
    unittest.main()
