"""Tests for thermal (slope collapse) erosion."""

import numpy as np
import pytest

from py_erosion.config import GeologySettings
from py_erosion.core.heightfield import HeightField
from py_erosion.core.heightmap_analysis import steep_cell_count
from py_erosion.core.thermal_erosion import ThermalErosion, ThermalErosionOptions

LOOSE = GeologySettings(rock_hardness=0.0)


class TestThermalErosion:
    """Test thermal erosion passes."""

    @pytest.fixture
    def spike(self):
        """Single unit spike in the middle of a flat 9x9 field."""
        data = np.zeros((9, 9))
        data[4, 4] = 1.0
        return HeightField.from_array(data)

    @pytest.fixture
    def rough_field(self):
        rng = np.random.default_rng(42)
        return HeightField.from_array(rng.random((16, 20)))

    def test_spike_sheds_material(self, spike):
        """A steep spike loses excess * rate to its steepest neighbour."""
        engine = ThermalErosion(ThermalErosionOptions(stability_threshold=0.2, erosion_rate=0.1), LOOSE)
        moved = engine.run_pass(spike)

        assert moved == pytest.approx(0.08)
        assert spike.get(4, 4) == pytest.approx(0.92)
        assert spike.data.sum() == pytest.approx(1.0)
        assert np.count_nonzero(spike.data) == 2

    def test_volume_is_conserved(self, rough_field):
        before = rough_field.data.sum()
        ThermalErosion(ThermalErosionOptions(iterations=10), LOOSE).run(rough_field)
        assert rough_field.data.sum() == pytest.approx(before)
        assert rough_field.data.min() >= 0.0

    def test_slopes_relax(self, rough_field):
        before = steep_cell_count(rough_field, 0.2)
        ThermalErosion(ThermalErosionOptions(iterations=20, erosion_rate=0.3), LOOSE).run(rough_field)
        assert steep_cell_count(rough_field, 0.2) < before

    def test_stable_field_is_untouched(self):
        """Below the threshold a pass is a no-op, so the run converges at once."""
        rng = np.random.default_rng(3)
        field = HeightField.from_array(rng.random((12, 12)) * 0.1)
        original = field.to_array()
        engine = ThermalErosion(ThermalErosionOptions(iterations=5), LOOSE)

        assert not np.any(engine.compute_pass(field))
        report = engine.run(field)

        assert report.converged
        assert report.passes == 1
        assert report.moved == 0.0
        assert np.array_equal(field.data, original)

    def test_pass_does_not_depend_on_sweep_order(self, rough_field):
        """Transposing the grid transposes the delta buffer."""
        engine = ThermalErosion(geology=LOOSE)
        delta = engine.compute_pass(rough_field)
        transposed = engine.compute_pass(HeightField.from_array(rough_field.data.T))
        assert np.allclose(delta, transposed.T, atol=1e-15)

    def test_compute_pass_does_not_mutate(self, rough_field):
        original = rough_field.to_array()
        ThermalErosion(geology=LOOSE).compute_pass(rough_field)
        assert np.array_equal(rough_field.data, original)

    def test_rock_hardness_one_prevents_movement(self, rough_field):
        original = rough_field.to_array()
        ThermalErosion(ThermalErosionOptions(iterations=3), GeologySettings(rock_hardness=1.0)).run(rough_field)
        assert np.array_equal(rough_field.data, original)

    def test_row_batches_match_full_pass(self, rough_field):
        other = rough_field.copy()
        engine = ThermalErosion(geology=LOOSE)

        engine.run_pass(rough_field)
        reports = [report.rows_done for report in engine.iter_passes(other, rows_per_batch=4)]

        assert reports == [4, 8, 12, 0]
        assert np.allclose(rough_field.data, other.data)

    def test_field_unchanged_until_sweep_completes(self, rough_field):
        original = rough_field.to_array()
        passes = ThermalErosion(geology=LOOSE).iter_passes(rough_field, rows_per_batch=5)
        next(passes)
        assert np.array_equal(rough_field.data, original)
        for _ in passes:
            pass
        assert not np.array_equal(rough_field.data, original)

    def test_rate_is_clamped(self):
        engine = ThermalErosion(ThermalErosionOptions(erosion_rate=0.9, stability_threshold=-1.0))
        assert engine.options.erosion_rate == 0.5
        assert engine.options.stability_threshold == 0.0

    def test_zero_iterations(self, rough_field):
        original = rough_field.to_array()
        report = ThermalErosion(ThermalErosionOptions(iterations=0)).run(rough_field)
        assert report.passes == 0
        assert report.progress == 1.0
        assert np.array_equal(rough_field.data, original)
