"""Tests for the generation driver, the AABB export and the SVG preview."""
import logging
import random

import pytest
from shapely.geometry import box

from wfc_core import (
    DEFAULT_EXPORT_PARAMS, TILE_COLORS, Prototype, WfcScene, aabb_footprint,
    clip_line_outside_polygon, color_bits_to_float, float_to_color_bits,
    make_aabb, make_tile, prototype_aabbs, render_aabbs_svg, run_generation,
)


class TestRunGeneration:
    def test_flat_floor_fills_grid(self, floor_scene):
        result = run_generation(floor_scene, 0, (0, 0, 0))
        assert result['steps'] == 15
        assert len(result['known']) == 16
        assert result['stuck'] == []
        assert len(result['aabbs']) == 16 * 25
        assert floor_scene.find_next_known_candidates() is None

    def test_max_steps(self, floor_scene):
        result = run_generation(floor_scene, 0, (0, 0, 0), max_steps=3)
        assert result['steps'] == 3
        assert len(result['known']) == 4

    def test_progress_callback(self, floor_scene):
        calls = []
        run_generation(floor_scene, 0, (0, 0, 0), max_steps=5,
                       progress_callback=lambda s, t: calls.append((s, t)))
        assert calls == [(i, 16) for i in range(1, 6)]

    def test_stuck_cells_reported(self, caplog):
        scene = WfcScene(3, 1, 1, rng=random.Random(0))
        scene.insert_block_case(Prototype(0, 2, [(-2.0, 0.0, 0.0)]))
        scene.insert_block_case(Prototype(0, 2, [(2.0, 1.0, 0.0)]))
        with caplog.at_level(logging.WARNING, logger='wfc_core'):
            result = run_generation(scene, 1, (1, 0, 0))
        assert result['steps'] == 1
        assert result['stuck'] == [2]
        assert 'ran out of candidates' in caplog.text

    def test_same_seeds_same_result(self):
        results = []
        for _ in range(2):
            scene = WfcScene(5, 2, 5, rng=random.Random(99))
            for name in ['floor', 'floor_corner', 'empty']:
                scene.insert_block_case(make_tile(name))
            results.append(run_generation(scene, 0, (2, 0, 2), rng=random.Random(3)))
        assert results[0]['known'] == results[1]['known']
        assert results[0]['stuck'] == results[1]['stuck']


class TestExport:
    def test_color_bit_pattern(self):
        value = color_bits_to_float(0x0F00FFFF)
        assert isinstance(value, float)
        assert float_to_color_bits(value) == 0x0F00FFFF

    def test_box_per_connection_point(self):
        p = Prototype(0, 2, [(0.0, 0.0, 0.0)])
        (aabb,) = prototype_aabbs(p, (1, 0, 0))
        assert aabb['min'] == pytest.approx((4.0, 0.0, 0.0))
        assert aabb['max'] == pytest.approx((4.8, 0.8, 0.8))
        assert float_to_color_bits(aabb['color']) == DEFAULT_EXPORT_PARAMS['color']

    def test_neighboring_tiles_abut(self):
        """The x+ face of one floor tile meets the x- face of the next."""
        floor = make_tile('floor')
        left = prototype_aabbs(floor, (0, 0, 0))
        right = prototype_aabbs(floor, (1, 0, 0))
        assert max(b['max'][0] for b in left) == pytest.approx(2.4)
        assert min(b['min'][0] for b in right) == pytest.approx(2.4)

    def test_params_override(self):
        p = Prototype(0, 2, [(2.0, 0.0, 0.0)])
        (aabb,) = prototype_aabbs(p, (0, 0, 0), {'box_scale': 1.0, 'box_size': 0.5})
        assert aabb['min'] == pytest.approx((2.0, 0.0, 0.0))
        assert aabb['max'] == pytest.approx((2.5, 0.5, 0.5))

    def test_payload_color(self):
        (aabb,) = prototype_aabbs(make_tile('corner'), (0, 0, 0))[:1]
        assert float_to_color_bits(aabb['color']) == TILE_COLORS['corner']

    def test_scene_buffer_drains(self, floor_scene):
        floor_scene.add_seed_point(0, (0, 0, 0))
        assert len(floor_scene.get_aabb_data()) == 25
        assert floor_scene.get_aabb_data() == []

    def test_make_known_emits_boxes(self, floor_scene):
        floor_scene.add_seed_point(0, (0, 0, 0))
        floor_scene.expand_band(0)
        floor_scene.get_aabb_data()
        floor_scene.make_known(1)
        assert len(floor_scene.get_aabb_data()) == 25


class TestSvgPreview:
    def test_footprint_projection(self):
        aabb = make_aabb((0, 1, 2), (1, 2, 3), 0.0)
        assert aabb_footprint(aabb, 'xz', 10).bounds == (0.0, 20.0, 10.0, 30.0)
        assert aabb_footprint(aabb, 'xy', 10).bounds == (0.0, 10.0, 10.0, 20.0)

    def test_unknown_plane(self):
        aabb = make_aabb((0, 0, 0), (1, 1, 1), 0.0)
        with pytest.raises(ValueError):
            aabb_footprint(aabb, 'xw')

    def test_clip_line_outside_polygon(self):
        segments = clip_line_outside_polygon(0, 1, 4, 1, box(1, 0, 2, 2))
        rounded = sorted(tuple(round(v, 6) for v in s) for s in segments)
        assert rounded == [(0, 1, 1, 1), (2, 1, 4, 1)]

    def test_clip_without_occluder(self):
        assert clip_line_outside_polygon(0, 0, 1, 1, None) == [(0, 0, 1, 1)]

    def test_empty_render(self):
        assert '<svg' in render_aabbs_svg([])

    def test_render_generated_scene(self, floor_scene):
        result = run_generation(floor_scene, 0, (0, 0, 0), max_steps=2)
        svg = render_aabbs_svg(result['aabbs'], params={'plane': 'xy'})
        assert '<svg' in svg
        assert '#4c72b0' in svg

    def test_render_progress(self, floor_scene):
        floor_scene.add_seed_point(0, (0, 0, 0))
        aabbs = floor_scene.get_aabb_data()
        calls = []
        render_aabbs_svg(aabbs, progress_callback=lambda c, t: calls.append((c, t)))
        assert calls[-1] == (25, 25)
