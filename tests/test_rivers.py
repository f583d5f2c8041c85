"""Tests for river source finding and tracing."""

import dataclasses
import math

import numpy as np
import pytest
from structlog.testing import capture_logs

from py_erosion.core.heightfield import HeightField
from py_erosion.core.rivers import (
    BOUNDARY,
    SINK,
    River,
    RiverOptions,
    RiverPoint,
    RiverTracer,
    path_length,
)


def _cones(width, height, peaks, radius):
    """Field made of linear cones; ``peaks`` is a list of (x, y, height)."""
    ys, xs = np.mgrid[0:height, 0:width]
    data = np.zeros((height, width))
    for px, py, top in peaks:
        cone = top * np.clip(1.0 - np.hypot(xs - px, ys - py) / radius, 0.0, None)
        data = np.maximum(data, cone)
    return HeightField.from_array(data)


class TestRiverSources:
    """Test river source selection."""

    def test_single_cone_has_one_source(self):
        field = _cones(128, 128, [(64, 64, 1.0)], radius=64)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3))
        assert tracer.find_sources(field) == [(64, 64)]

    def test_close_peaks_keep_only_the_higher(self):
        """Peaks closer than twice the source radius yield only the higher one."""
        field = _cones(80, 80, [(30, 40, 0.9), (45, 40, 0.8)], radius=12)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3, source_radius=10))
        assert tracer.find_sources(field) == [(30, 40)]

    def test_distant_peaks_are_both_sources(self):
        field = _cones(80, 80, [(55, 40, 0.8), (20, 40, 0.9)], radius=12)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3, source_radius=10))
        assert tracer.find_sources(field) == [(20, 40), (55, 40)]

    def test_equal_peaks_keep_scan_order(self):
        """Equal candidates are taken column by column, smallest x first."""
        field = _cones(80, 80, [(60, 20, 0.8), (20, 50, 0.8)], radius=12)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3, source_radius=10))
        assert tracer.find_sources(field) == [(20, 50), (60, 20)]

    def test_max_rivers_limits_sources(self):
        field = _cones(100, 100, [(20, 20, 0.9), (75, 20, 0.8), (50, 75, 0.85)], radius=12)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3, max_rivers=2))
        assert tracer.find_sources(field) == [(20, 20), (50, 75)]

    def test_low_terrain_has_no_sources(self):
        field = HeightField.filled(64, 64, 0.5)
        assert RiverTracer().find_sources(field) == []

    def test_sources_stay_away_from_edges(self):
        """Candidates must be at least one source radius from the border."""
        field = _cones(60, 60, [(3, 30, 1.0)], radius=20)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3))
        for x, y in tracer.find_sources(field):
            assert 10 <= x < 50 and 10 <= y < 50


class TestRiverOptions:
    """Test correction of degenerate river options."""

    @pytest.fixture
    def cone(self):
        return _cones(128, 128, [(64, 64, 1.0)], radius=64)

    def test_zero_max_flow_rate_corrected_with_warning(self, cone):
        """A zero flow ceiling is corrected instead of failing the trace."""
        with capture_logs() as logs:
            tracer = RiverTracer(RiverOptions(min_source_height=0.3, max_flow_rate=0.0))

        assert tracer.options.max_flow_rate == RiverOptions().max_flow_rate
        assert any(entry["log_level"] == "warning" for entry in logs)

        rivers = tracer.trace_all(cone)
        assert len(rivers) == 1
        assert all(math.isfinite(point.depth) for point in rivers[0].points)

    def test_zero_step_size_corrected_with_warning(self, cone):
        """A river cannot pile all its points onto the source cell."""
        with capture_logs() as logs:
            tracer = RiverTracer(RiverOptions(min_source_height=0.3, step_size=0.0))

        assert tracer.options.step_size == RiverOptions().step_size
        assert any(entry["log_level"] == "warning" for entry in logs)

        river = tracer.trace_all(cone)[0]
        assert river.points[1].position != river.points[0].position
        assert river.length > 0

    def test_out_of_range_values_corrected(self):
        with capture_logs() as logs:
            tracer = RiverTracer(RiverOptions(min_points=0, source_radius=-5.0, momentum=1.5))

        assert tracer.options.min_points == 1
        assert tracer.options.source_radius == 0.0
        assert tracer.options.momentum == 1.0
        assert len([entry for entry in logs if entry["log_level"] == "warning"]) == 3

    def test_valid_options_are_kept(self):
        options = RiverOptions(min_source_height=0.3)
        with capture_logs() as logs:
            tracer = RiverTracer(options)
        assert tracer.options is options
        assert not any(entry["log_level"] == "warning" for entry in logs)


class TestRiverTracing:
    """Test downhill path tracing."""

    @pytest.fixture
    def cone(self):
        """Radially symmetric cone peaking at the centre of a 128x128 grid."""
        return _cones(128, 128, [(64, 64, 1.0)], radius=64)

    @pytest.fixture
    def tracer(self):
        return RiverTracer(RiverOptions(min_source_height=0.3))

    def test_cone_yields_one_river(self, cone, tracer):
        rivers = tracer.trace_all(cone)

        assert len(rivers) == 1
        river = rivers[0]
        assert river.source == (64.0, 64.0)
        assert river.termination in (SINK, BOUNDARY)
        assert river.mouth is not None
        assert len(river) >= tracer.options.min_points

    def test_river_flows_downhill(self, cone, tracer):
        river = tracer.trace_all(cone)[0]
        elevations = [point.elevation for point in river.points]
        assert all(a >= b for a, b in zip(elevations, elevations[1:]))
        assert elevations[0] == pytest.approx(1.0)

    def test_sink_mouth_is_low(self, cone, tracer):
        river = tracer.trace_all(cone)[0]
        if river.termination == SINK:
            assert cone.sample(*river.mouth) < tracer.options.sink_height

    def test_width_and_flow_grow_within_limits(self, cone, tracer):
        opts = tracer.options
        river = tracer.trace_all(cone)[0]

        widths = [point.width for point in river.points]
        flows = [point.flow_rate for point in river.points]
        assert widths[0] == pytest.approx(opts.river_width * opts.source_width_ratio)
        assert flows[0] == pytest.approx(opts.min_flow_rate)
        assert all(a <= b for a, b in zip(widths, widths[1:]))
        assert all(a <= b for a, b in zip(flows, flows[1:]))
        assert max(widths) <= opts.river_width
        assert max(flows) <= opts.max_flow_rate

    def test_points_are_one_step_apart(self, cone, tracer):
        river = tracer.trace_all(cone)[0]
        for a, b in zip(river.points, river.points[1:]):
            assert math.hypot(b.x - a.x, b.y - a.y) == pytest.approx(tracer.options.step_size)
        assert river.length == pytest.approx(path_length(river.points))

    def test_tracing_is_deterministic(self, cone, tracer):
        first = [river.to_dict() for river in tracer.trace_all(cone)]
        second = [river.to_dict() for river in RiverTracer(tracer.options).trace_all(cone.copy())]
        assert first == second

    def test_tracing_does_not_modify_field(self, cone, tracer):
        original = cone.to_array()
        tracer.trace_all(cone)
        assert np.array_equal(cone.data, original)

    def test_flat_field_yields_no_rivers(self):
        """Every path on flat ground stalls immediately and is discarded."""
        field = HeightField.filled(64, 64, 0.5)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3))

        assert len(tracer.find_sources(field)) == tracer.options.max_rivers
        assert tracer.trace(field, (32, 32)) is None
        assert tracer.trace_all(field) == []

    def test_max_length_caps_path(self, cone):
        tracer = RiverTracer(RiverOptions(min_source_height=0.3, max_river_length=12, min_points=5))
        river = tracer.trace(cone, (64, 64))
        assert river is not None
        assert len(river) == 12
        assert river.mouth is None

    def test_iter_trace_yields_per_source(self):
        field = _cones(100, 100, [(20, 20, 0.9), (75, 20, 0.8), (50, 75, 0.85)], radius=30)
        tracer = RiverTracer(RiverOptions(min_source_height=0.3, source_radius=8))
        batches = list(tracer.iter_trace(field))
        assert len(batches) == len(tracer.find_sources(field))
        assert batches[-1] == tracer.rivers

        tracer.clear()
        assert tracer.rivers == []


class TestRiverData:
    """Test river data structures."""

    def test_to_dict(self):
        point = RiverPoint(x=1.0, y=2.0, width=0.6, depth=0.01, flow_rate=0.1, direction=(1.0, 0.0), elevation=0.8)
        river = River(id=3, source=(1.0, 2.0), points=[point], mouth=(5.0, 2.0), length=4.0, termination=SINK)

        data = river.to_dict()
        assert data["id"] == 3
        assert data["mouth"] == [5.0, 2.0]
        assert data["termination"] == "sink"
        assert data["points"][0]["direction"] == [1.0, 0.0]
        assert point.position == (1.0, 2.0)

    def test_path_length(self):
        points = [
            RiverPoint(x=float(x), y=0.0, width=1.0, depth=0.1, flow_rate=0.1, direction=(1.0, 0.0), elevation=1.0)
            for x in range(4)
        ]
        assert path_length(points) == pytest.approx(3.0)
        assert path_length(points[:1]) == 0.0

    def test_river_is_immutable(self):
        """Exported rivers cannot be edited by downstream consumers."""
        point = RiverPoint(x=1.0, y=2.0, width=0.6, depth=0.01, flow_rate=0.1, direction=(1.0, 0.0), elevation=0.8)
        river = River(id=0, source=(1.0, 2.0), points=[point])

        assert isinstance(river.points, tuple)
        with pytest.raises(AttributeError):
            river.points.clear()
        with pytest.raises(dataclasses.FrozenInstanceError):
            river.mouth = (0.0, 0.0)
