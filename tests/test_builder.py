"""Tests for the descriptor builder (graph structure, geometry, text layers)."""

import pytest

from memecompose.builder import (
    OVERLAY_TEXT_INSET,
    WATERMARK_BORDER_COLOR,
    build_graph,
    build_template_graph,
    build_text_graph,
)
from memecompose.request import request_from_params
from memecompose.stages import serialize_graph


def _graph(template=False, **params):
    return build_graph(request_from_params(params), template=template)


class TestTextModeStructure:
    def test_default_stage_order(self):
        graph = _graph()
        kinds = [s.kind for s in graph.stages]
        assert kinds == [
            "color", "scale", "overlay", "crop", "color", "overlay", "overlay",
        ]
        assert graph.output == "final"

    def test_linear_chain(self):
        graph = _graph(text="Hello", overlayText="world")
        inputs = {layer.input for layer in graph.layers}
        produced = set()
        for stage in graph.stages:
            for label in stage.inputs:
                assert label == "0:v" or label in inputs or label in produced
            assert stage.output not in produced
            produced.add(stage.output)

    def test_full_layer_order(self):
        graph = _graph(text="Hello", overlayText="world")
        assert [layer.name for layer in graph.layers] == ["top_text", "caption", "watermark"]
        assert [layer.input for layer in graph.layers] == ["1:v", "2:v", "3:v"]
        assert [layer.text for layer in graph.layers] == ["Hello", "WORLD", "SAMOURAIS"]

    def test_layers_numbered_from_one_when_some_absent(self):
        graph = _graph(overlayText="world")
        assert [(layer.name, layer.input) for layer in graph.layers] == [
            ("caption", "1:v"), ("watermark", "2:v"),
        ]

    def test_each_layer_laid_full_canvas_at_origin(self):
        graph = _graph(text="Hello", overlayText="world")
        overlays = graph.find("overlay")[-3:]
        assert [o.inputs[1] for o in overlays] == ["1:v", "2:v", "3:v"]
        assert [o.output for o in overlays] == ["with_text", "with_overlay", "final"]
        for overlay in overlays:
            assert (overlay.option("x"), overlay.option("y")) == (0, 0)

    def test_watermark_is_last(self):
        graph = _graph(text="Hello", overlayText="world")
        last = graph.stages[-1]
        assert last.kind == "overlay"
        assert last.inputs == ("with_overlay", graph.layer("watermark").input)
        assert last.output == graph.output

    def test_engine_draws_no_text(self):
        graph = _graph(text="Hello", overlayText="world")
        assert {s.kind for s in graph.stages} <= {"color", "scale", "overlay", "crop"}

    def test_builds_text_graph(self):
        req = request_from_params({})
        assert build_graph(req) == build_text_graph(req)


class TestCoverScaling:
    def test_targets_frame_size(self):
        scale = _graph().find("scale")[0]
        assert scale.inputs == ("0:v",)
        assert scale.option("w") == 972
        assert scale.option("h") == 810
        assert scale.option("force_original_aspect_ratio") == "increase"

    def test_scale_percent_applied(self):
        scale = _graph(imageScale=150).find("scale")[0]
        assert scale.option("w") == 1458
        assert scale.option("h") == 1215

    def test_tiny_scale_never_zero(self):
        scale = _graph(imageScale=0.001).find("scale")[0]
        assert scale.option("w") >= 1
        assert scale.option("h") >= 1


class TestPlacement:
    def test_zero_offset_centers_on_frame_not_canvas(self):
        # Frame center (540, 600) differs from canvas center (540, 540).
        overlay = _graph().find("overlay")[0]
        assert overlay.inputs == ("bg", "scaled")
        assert overlay.option("x") == "540-overlay_w/2"
        assert overlay.option("y") == "600-overlay_h/2"

    def test_off_center_frame(self):
        overlay = _graph(frameX=600, frameY=100, frameWidth=400, frameHeight=200).find("overlay")[0]
        assert overlay.option("x") == "800-overlay_w/2"
        assert overlay.option("y") == "200-overlay_h/2"

    def test_offset_relative_to_frame(self):
        overlay = _graph(imageOffsetX=-30, imageOffsetY=25).find("overlay")[0]
        assert overlay.option("x") == "510-overlay_w/2"
        assert overlay.option("y") == "625-overlay_h/2"


class TestCropThenReseat:
    def test_crop_to_frame(self):
        crop = _graph().find("crop")[0]
        assert (crop.option("w"), crop.option("h")) == (972, 810)
        assert (crop.option("x"), crop.option("y")) == (54, 195)
        assert crop.option("exact") == 1

    def test_reseat_on_fresh_background(self):
        graph = _graph()
        colors = graph.find("color")
        assert [c.output for c in colors] == ["bg", "bg2"]
        reseat = graph.find("overlay")[1]
        assert reseat.inputs == ("bg2", "cropped")
        assert (reseat.option("x"), reseat.option("y")) == (54, 195)

    def test_frame_past_canvas_edge_clipped(self):
        graph = _graph(frameX=900, frameY=-100, frameWidth=400, frameHeight=300)
        crop = graph.find("crop")[0]
        assert (crop.option("x"), crop.option("y")) == (900, 0)
        assert (crop.option("w"), crop.option("h")) == (180, 200)
        reseat = graph.find("overlay")[1]
        assert (reseat.option("x"), reseat.option("y")) == (900, 0)
        # Scaling and placement still use the full frame.
        scale = graph.find("scale")[0]
        assert (scale.option("w"), scale.option("h")) == (400, 300)

    def test_frame_entirely_off_canvas_has_no_source(self):
        graph = _graph(frameX=5000)
        assert graph.find("scale") == []
        assert graph.find("crop") == []
        assert graph.stages[0].output == "bg"
        assert graph.stages[-1].inputs == ("bg", "1:v")

    def test_backgrounds_match_canvas_and_trim(self):
        graph = _graph(templateWidth=720, templateHeight=1280, trimStart=2, trimEnd=4.5)
        for color in graph.find("color"):
            assert color.option("s") == "720x1280"
            assert color.option("d") == 2.5
            assert color.option("r") == 30


class TestTopText:
    def test_absent_by_default(self):
        assert [layer.name for layer in _graph().layers] == ["watermark"]

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_text_produces_no_layer(self, text):
        assert _graph(text=text).layer("top_text") is None

    def test_centered_dark_no_stroke(self):
        layer = _graph(text="Hello").layer("top_text")
        assert layer.lines == ("Hello",)
        assert (layer.x, layer.halign) == (540, "center")
        assert (layer.y, layer.valign) == (40, "top")
        assert layer.size == 42
        assert layer.fill == (0, 0, 0)
        assert layer.stroke_width == 0
        assert not layer.bold

    def test_left_align_uses_text_x(self):
        layer = _graph(text="Hello", textAlign="left", textX=70).layer("top_text")
        assert (layer.x, layer.halign) == (70, "left")

    def test_wrapped_into_lines(self):
        # 1080 / (42 * 0.6) -> 42 chars per line
        text = "word " * 30
        layer = _graph(text=text).layer("top_text")
        assert len(layer.lines) > 1
        assert all(len(line) <= 42 for line in layer.lines)
        assert layer.text == "\n".join(layer.lines)

    def test_text_kept_literally(self):
        layer = _graph(text="100% real: [ok]").layer("top_text")
        assert layer.text == "100% real: [ok]"


class TestOverlayText:
    def test_uppercased_and_stroked(self):
        layer = _graph(overlayText="world").layer("caption")
        assert layer.lines == ("WORLD",)
        assert layer.fill == (255, 255, 255)
        assert layer.stroke_fill == (0, 0, 0)
        assert layer.stroke_width == 4
        assert layer.bold

    def test_size_from_canvas_width(self):
        layer = _graph(overlayText="x").layer("caption")
        assert layer.size == pytest.approx(1080 * 0.055)

    def test_bottom_of_frame(self):
        layer = _graph(overlayText="x").layer("caption")
        assert layer.y == 195 + 810 - OVERLAY_TEXT_INSET
        assert (layer.x, layer.halign, layer.valign) == (540, "center", "top")

    def test_whitespace_only_omitted(self):
        assert _graph(overlayText="  ").layer("caption") is None


class TestWatermark:
    def test_anchored_bottom_right(self):
        layer = _graph().layer("watermark")
        assert (layer.x, layer.y) == (1010, 1040)
        assert (layer.halign, layer.valign) == ("right", "bottom")

    def test_style(self):
        layer = _graph().layer("watermark")
        assert layer.text == "SAMOURAIS"
        assert layer.size == pytest.approx(1080 * 0.04)
        assert layer.stroke_width == 2
        assert layer.stroke_fill == WATERMARK_BORDER_COLOR

    @pytest.mark.parametrize("percent,opacity", [(100, 1), (50, 0.5), (0, 0)])
    def test_opacity(self, percent, opacity):
        assert _graph(watermarkOpacity=percent).layer("watermark").opacity == opacity

    def test_opacity_clamped(self):
        assert _graph(watermarkOpacity=250).layer("watermark").opacity == 1
        assert _graph(watermarkOpacity=-5).layer("watermark").opacity == 0


class TestTemplateMode:
    def test_stage_order(self):
        graph = _graph(template=True, text="ignored", overlayText="ignored")
        assert [s.kind for s in graph.stages] == ["color", "scale", "overlay", "overlay"]
        assert graph.layers == ()

    def test_template_on_top_at_origin(self):
        last = _graph(template=True).stages[-1]
        assert last.inputs == ("placed", "1:v")
        assert (last.option("x"), last.option("y")) == (0, 0)
        assert last.output == "final"

    def test_falls_back_to_frame(self):
        graph = _graph(template=True)
        scale = graph.find("scale")[0]
        assert (scale.option("w"), scale.option("h")) == (972, 810)
        placed = graph.find("overlay")[0]
        assert placed.option("x") == "540-overlay_w/2"
        assert placed.option("y") == "600-overlay_h/2"

    def test_uses_original_frame(self):
        graph = _graph(
            template=True,
            originalFrameX=0, originalFrameY=100,
            originalFrameWidth=1080, originalFrameHeight=900,
            imageOffsetX=10,
        )
        scale = graph.find("scale")[0]
        assert (scale.option("w"), scale.option("h")) == (1080, 900)
        placed = graph.find("overlay")[0]
        assert placed.option("x") == "550-overlay_w/2"
        assert placed.option("y") == "550-overlay_h/2"

    def test_no_crop(self):
        assert _graph(template=True).find("crop") == []

    def test_direct_call_matches_dispatch(self):
        req = request_from_params({})
        assert build_template_graph(req) == build_graph(req, template=True)


class TestEndToEndScenario:
    def test_serialized_graph(self):
        graph = _graph(
            trimStart=0, trimEnd=5, text="Hello", overlayText="WORLD",
            watermarkOpacity=50,
        )
        assert serialize_graph(graph) == (
            "color=c=white:s=1080x1080:r=30:d=5[bg];"
            "[0:v]scale=w=972:h=810:force_original_aspect_ratio=increase[scaled];"
            "[bg][scaled]overlay=x=540-overlay_w/2:y=600-overlay_h/2[placed];"
            "[placed]crop=w=972:h=810:x=54:y=195:exact=1[cropped];"
            "color=c=white:s=1080x1080:r=30:d=5[bg2];"
            "[bg2][cropped]overlay=x=54:y=195[framed];"
            "[framed][1:v]overlay=x=0:y=0[with_text];"
            "[with_text][2:v]overlay=x=0:y=0[with_overlay];"
            "[with_overlay][3:v]overlay=x=0:y=0[final]"
        )
        assert graph.layer("watermark").opacity == 0.5
