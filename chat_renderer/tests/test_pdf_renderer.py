"""Tests for the drawing pass, using a surface that records every call."""
import unittest
from unittest.mock import Mock

from chat_renderer.model.document_model import ExportStage, ImageLoadError
from chat_renderer.model.elements import BlockType, ContentBlock, MessageStyles, TextRun
from chat_renderer.parser.block_measurer import BlockMeasurer, PageGeometry
from chat_renderer.parser.text_wrap import CODE_FONT, ITALIC_FONT
from chat_renderer.renderer.code_colors import DEFAULT_CODE_COLOR
from chat_renderer.renderer.highlighter import PlainHighlighter
from chat_renderer.renderer.image_loader import LoadedImage
from chat_renderer.renderer.pdf_renderer import (
    DARK_THEME_TEXT_COLOR,
    IMAGE_PLACEHOLDER_TEXT,
    MUTED_TEXT_COLOR,
    PdfRenderer,
)


class RecordingSurface:
    """In-memory surface collecting draw operations per page."""

    def __init__(self):
        self.page = 1
        self.rects = []
        self.texts = []
        self.lines = []
        self.images = []
        self.calls = 0

    def _tick(self):
        self.calls += 1
        return self.calls

    def fill_rect(self, x, y, width, height, color, radius=0.0):
        self.rects.append(
            {"seq": self._tick(), "page": self.page, "x": x, "y": y, "width": width, "height": height, "color": color}
        )

    def draw_text(self, text, x, baseline, font_name, font_size, color):
        self.texts.append(
            {
                "seq": self._tick(),
                "page": self.page,
                "text": text,
                "x": x,
                "baseline": baseline,
                "font": font_name,
                "size": font_size,
                "color": color,
            }
        )

    def draw_line(self, x1, y1, x2, y2, color, width):
        self.lines.append({"seq": self._tick(), "page": self.page, "x1": x1, "y1": y1, "x2": x2, "y2": y2, "color": color})

    def draw_image(self, image, x, y, width, height):
        self.images.append(
            {"seq": self._tick(), "page": self.page, "image": image, "x": x, "y": y, "width": width, "height": height}
        )

    def new_page(self):
        self.page += 1

    def text(self, value):
        return next(entry for entry in self.texts if entry["text"] == value)


def paragraph(text, **style):
    return ContentBlock(type=BlockType.PARAGRAPH, runs=[TextRun(text=text, **style)])


class PdfRendererTest(unittest.TestCase):
    """Drawing behaviour checked through recorded surface calls."""

    def setUp(self):
        self.geometry = PageGeometry()
        self.loader = Mock()
        self.renderer = PdfRenderer(self.geometry, highlighter=PlainHighlighter(), image_loader=self.loader)
        self.surface = RecordingSurface()
        self.page_bottom = self.geometry.page_height - self.geometry.margin_bottom

    def render(self, blocks, progress=None):
        return self.renderer.render_pages(blocks, self.surface, progress)

    def test_long_code_block_continues_on_next_page(self):
        code = "\n".join(f"{i:02d}" + "x" * 78 for i in range(50))
        state = self.render([ContentBlock(type=BlockType.CODE_BLOCK, code=code, background_color="#1e1e1e")])

        self.assertGreaterEqual(state.page_number, 2)
        code_texts = [entry for entry in self.surface.texts if entry["font"] == CODE_FONT]
        self.assertEqual(len(code_texts), 50)
        self.assertEqual(code_texts[0]["text"], "00" + "x" * 78)
        line_height = self.geometry.code_line_height
        for entry in code_texts:
            self.assertLessEqual(entry["baseline"] + line_height * 0.3, self.page_bottom + 1e-6)
        backgrounds = {rect["page"] for rect in self.surface.rects if rect["color"] == "#1e1e1e"}
        self.assertEqual(backgrounds, {1, 2})

    def test_nested_list_markers_and_indent(self):
        inner = ContentBlock(
            type=BlockType.LIST, ordered=True, items=[ContentBlock(type=BlockType.LIST_ITEM, runs=[TextRun(text="inner")])]
        )
        outer = ContentBlock(
            type=BlockType.LIST, items=[ContentBlock(type=BlockType.LIST_ITEM, runs=[TextRun(text="outer")]), inner]
        )
        self.render([outer])

        bullet = self.surface.text("-")
        number = self.surface.text("1.")
        outer_text = self.surface.text("outer")
        inner_text = self.surface.text("inner")
        self.assertAlmostEqual(bullet["x"], 24.0)
        self.assertAlmostEqual(outer_text["x"], 28.0)
        self.assertAlmostEqual(inner_text["x"] - outer_text["x"], 8.0)
        self.assertLess(number["x"], inner_text["x"])
        self.assertGreater(inner_text["baseline"], outer_text["baseline"])

    def test_user_message_without_background_has_no_bubble(self):
        message = ContentBlock(
            type=BlockType.USER_MESSAGE, role="user", items=[paragraph("hello")], styles=MessageStyles()
        )
        self.render([message])

        self.assertTrue(all(rect["width"] == self.geometry.page_width for rect in self.surface.rects))
        self.assertAlmostEqual(self.surface.text("hello")["x"], self.geometry.margin_left)

    def test_user_bubble_is_right_aligned(self):
        message = ContentBlock(
            type=BlockType.USER_MESSAGE,
            role="user",
            items=[paragraph("hello")],
            styles=MessageStyles(background_color="#333333"),
        )
        self.render([message])

        bubble = next(rect for rect in self.surface.rects if rect["color"] == "#333333")
        self.assertAlmostEqual(bubble["width"], 170.0 * 0.7)
        self.assertAlmostEqual(bubble["x"] + bubble["width"], 190.0)
        text = self.surface.text("hello")
        self.assertAlmostEqual(text["x"], bubble["x"] + 10.0)
        self.assertEqual(text["color"], DARK_THEME_TEXT_COLOR)

    def test_bubble_background_continues_across_pages(self):
        items = [paragraph(f"line {i}") for i in range(40)]
        message = ContentBlock(
            type=BlockType.USER_MESSAGE, role="user", items=items, styles=MessageStyles(background_color="#333333")
        )
        state = self.render([message])

        self.assertGreaterEqual(state.page_number, 2)
        bubble_pages = {rect["page"] for rect in self.surface.rects if rect["color"] == "#333333"}
        self.assertEqual(bubble_pages, set(range(1, state.page_number + 1)))
        for entry in self.surface.texts:
            self.assertLessEqual(entry["baseline"], self.page_bottom)

    def test_page_background_painted_on_every_page(self):
        state = self.render([paragraph(f"paragraph {i}") for i in range(60)])
        full_page = [rect for rect in self.surface.rects if rect["width"] == self.geometry.page_width]
        self.assertEqual(len(full_page), state.page_number)

    def test_links_are_collected_with_page_and_region(self):
        block = ContentBlock(
            type=BlockType.PARAGRAPH,
            runs=[TextRun(text="see "), TextRun(text="docs", link="https://example.com/docs")],
        )
        state = self.render([block, ContentBlock(type=BlockType.LINK, href="https://example.com", runs=[TextRun(text="home")])])

        self.assertEqual([link.url for link in state.links], ["https://example.com/docs", "https://example.com"])
        first = state.links[0]
        self.assertEqual(first.page, 1)
        self.assertAlmostEqual(first.y, self.geometry.margin_top)
        self.assertAlmostEqual(first.height, self.geometry.body_line_height)
        self.assertGreater(first.x, self.geometry.margin_left)
        self.assertTrue(self.surface.lines)

    def test_blockquote_is_muted_and_italic(self):
        self.render([ContentBlock(type=BlockType.BLOCKQUOTE, runs=[TextRun(text="quoted")])])

        text = self.surface.text("quoted")
        self.assertEqual(text["font"], ITALIC_FONT)
        self.assertEqual(text["color"], MUTED_TEXT_COLOR)
        self.assertEqual(len(self.surface.lines), 1)

    def test_highlighter_failure_keeps_code(self):
        highlighter = Mock()
        highlighter.highlight.side_effect = RuntimeError("lexer exploded")
        renderer = PdfRenderer(self.geometry, highlighter=highlighter, image_loader=self.loader)
        block = ContentBlock(type=BlockType.CODE_BLOCK, code="print(1)", language="python", background_color="#1e1e1e")

        renderer.render_pages([block], self.surface)

        code = self.surface.text("print(1)")
        self.assertEqual(code["color"], DEFAULT_CODE_COLOR)
        self.assertEqual(self.surface.text("python")["font"], "Helvetica")

    def test_image_load_failure_draws_placeholder(self):
        self.loader.load.side_effect = ImageLoadError("timed out")
        self.render([ContentBlock(type=BlockType.IMAGE, src="https://example.com/a.png"), paragraph("after")])

        placeholder = self.surface.text(IMAGE_PLACEHOLDER_TEXT)
        self.assertEqual(placeholder["color"], MUTED_TEXT_COLOR)
        self.assertGreater(self.surface.text("after")["baseline"], placeholder["baseline"])
        self.assertEqual(self.surface.images, [])

    def test_unexpected_block_failure_is_isolated(self):
        self.loader.load.side_effect = ValueError("broken loader")
        self.render([paragraph("before"), ContentBlock(type=BlockType.IMAGE, src="a.png"), paragraph("after")])

        self.surface.text("[image could not be rendered]")
        self.surface.text("before")
        self.surface.text("after")

    def test_image_is_centered_and_scaled(self):
        reader = object()
        self.loader.load.return_value = LoadedImage(reader=reader, width_px=400, height_px=200)
        self.render([ContentBlock(type=BlockType.IMAGE, src="https://example.com/a.png")])

        self.loader.load.assert_called_once_with("https://example.com/a.png", 10.0)
        image = self.surface.images[0]
        self.assertIs(image["image"], reader)
        self.assertAlmostEqual(image["width"], 400 * 0.264583, places=3)
        self.assertAlmostEqual(image["x"] + image["width"] / 2, 105.0, places=3)

    def test_progress_reports_each_top_level_block(self):
        progress = Mock()
        self.render([paragraph("a"), paragraph("b"), ContentBlock(type=BlockType.HORIZONTAL_RULE)], progress)

        events = [call.args[0] for call in progress.call_args_list]
        self.assertEqual([event.completed for event in events], [1, 2, 3])
        self.assertTrue(all(event.stage is ExportStage.RENDERING for event in events))

    def test_heading_is_bold_and_spaced(self):
        self.render([ContentBlock(type=BlockType.HEADING, level=1, runs=[TextRun(text="Title")])])

        title = self.surface.text("Title")
        self.assertEqual(title["font"], "Helvetica-Bold")
        self.assertEqual(title["size"], 22.0)
        self.assertGreater(title["baseline"], self.geometry.margin_top + 8.0)

    def test_final_code_piece_keeps_its_padding_above_the_bottom_margin(self):
        for line_count in range(44, 101):
            with self.subTest(line_count=line_count):
                surface = RecordingSurface()
                code = "\n".join(f"line {i}" for i in range(line_count))
                self.renderer.render_pages(
                    [ContentBlock(type=BlockType.CODE_BLOCK, code=code, background_color="#1e1e1e")], surface
                )

                backgrounds = [rect for rect in surface.rects if rect["color"] == "#1e1e1e"]
                for rect in backgrounds:
                    self.assertLessEqual(rect["y"] + rect["height"], self.page_bottom + 1e-6)
                code_texts = [entry["text"] for entry in surface.texts if entry["font"] == CODE_FONT]
                self.assertEqual(len(code_texts), line_count)


def user_bubble(items, background="#333333"):
    return ContentBlock(
        type=BlockType.USER_MESSAGE, role="user", items=items, styles=MessageStyles(background_color=background)
    )


def filler(count):
    return [paragraph(f"filler {i}") for i in range(count)]


class MessageLayoutTest(unittest.TestCase):
    """Pagination of message wrappers and user bubbles."""

    def setUp(self):
        self.geometry = PageGeometry()
        self.renderer = PdfRenderer(self.geometry, highlighter=PlainHighlighter(), image_loader=Mock())
        self.page_bottom = self.geometry.page_height - self.geometry.margin_bottom

    def render(self, blocks):
        surface = RecordingSurface()
        state = self.renderer.render_pages(blocks, surface)
        return surface, state

    def test_heading_lands_on_the_same_page_as_its_follower(self):
        followers = {
            "paragraph": paragraph("word " * 200),
            "list": ContentBlock(
                type=BlockType.LIST,
                items=[ContentBlock(type=BlockType.LIST_ITEM, runs=[TextRun(text=f"item {i}")]) for i in range(12)],
            ),
            "bubble": user_bubble([paragraph(f"bubble {i}") for i in range(10)]),
        }
        heading = ContentBlock(type=BlockType.HEADING, level=2, runs=[TextRun(text="Section")])
        for filler_count in (18, 24):
            for name, follower in followers.items():
                with self.subTest(follower=name, filler=filler_count):
                    surface, _ = self.render(filler(filler_count) + [heading, follower])

                    index = next(i for i, entry in enumerate(surface.texts) if entry["text"] == "Section")
                    self.assertEqual(surface.texts[index]["page"], surface.texts[index + 1]["page"])

    def test_splittable_bubble_starts_on_the_current_page(self):
        surface, state = self.render(filler(10) + [user_bubble([paragraph(f"bubble {i}") for i in range(30)])])

        self.assertEqual(surface.text("bubble 0")["page"], 1)
        self.assertGreaterEqual(state.page_number, 2)
        first_piece = next(rect for rect in surface.rects if rect["color"] == "#333333")
        self.assertEqual(first_piece["page"], 1)
        self.assertGreater(first_piece["y"], self.geometry.margin_top + 90.0)

    def test_bubble_background_covers_every_line_it_holds(self):
        code = "\n".join(f"value_{i} = {i}" for i in range(20))
        items = (
            [paragraph(f"head {i}") for i in range(20)]
            + [ContentBlock(type=BlockType.CODE_BLOCK, code=code, background_color="#1e1e1e")]
            + [paragraph(f"tail {i}") for i in range(5)]
        )
        surface, state = self.render([user_bubble(items)])

        self.assertEqual(state.page_number, 2)
        pieces = [rect for rect in surface.rects if rect["color"] == "#333333"]
        self.assertEqual([rect["page"] for rect in pieces], [1, 2])
        for entry in surface.texts:
            piece = next(rect for rect in pieces if rect["page"] == entry["page"])
            self.assertLess(piece["seq"], entry["seq"], entry["text"])
            self.assertGreaterEqual(entry["baseline"], piece["y"], entry["text"])
            self.assertLessEqual(entry["baseline"], piece["y"] + piece["height"], entry["text"])
            self.assertLessEqual(piece["y"] + piece["height"], self.page_bottom + 1e-6)
        code_background = next(rect for rect in surface.rects if rect["color"] == "#1e1e1e")
        self.assertGreater(code_background["seq"], pieces[1]["seq"])
        self.assertEqual(surface.text("tail 4")["color"], DARK_THEME_TEXT_COLOR)

    def test_message_footprint_matches_its_measurement(self):
        measurer = BlockMeasurer(self.geometry)
        for message in (
            ContentBlock(type=BlockType.ASSISTANT_MESSAGE, role="assistant", items=[paragraph("answer")]),
            user_bubble([paragraph("question")]),
        ):
            with self.subTest(kind=message.type.value):
                surface, _ = self.render([message, paragraph("after")])

                expected_top = self.geometry.margin_top + measurer.measure(message, self.geometry.content_width).height
                baseline = surface.text("after")["baseline"]
                self.assertAlmostEqual(baseline, expected_top + self.geometry.body_line_height * 0.7)

    def test_assistant_message_draws_its_padding(self):
        message = ContentBlock(type=BlockType.ASSISTANT_MESSAGE, role="assistant", items=[paragraph("hi")])
        surface, _ = self.render([message])

        top = self.geometry.margin_top + self.geometry.message_margin / 2 + self.geometry.message_padding
        self.assertAlmostEqual(surface.text("hi")["baseline"], top + self.geometry.body_line_height * 0.7)
        self.assertAlmostEqual(surface.text("hi")["x"], self.geometry.margin_left)


if __name__ == "__main__":
    unittest.main()
