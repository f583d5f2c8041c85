#!/usr/bin/env python3
"""
Simple demo script showing erosion and river generation.
"""

import numpy as np

from py_erosion import (
    ErosionPipeline,
    HeightField,
    HydraulicErosionOptions,
    RiverOptions,
    TerrainGenerationParams,
    ThermalErosionOptions,
)
from py_erosion.config import GeologySettings
from py_erosion.utils import configure_logging, create_prng


def build_island(size, seed):
    """Radial island with a few random hills on top."""
    prng = create_prng(seed, stream="demo")
    ys, xs = np.mgrid[0:size, 0:size]
    centre = size / 2
    heights = np.clip(1.0 - np.hypot(xs - centre, ys - centre) / (size * 0.45), 0.0, None) * 0.6

    for _ in range(6):
        hx = prng.uniform(size * 0.25, size * 0.75)
        hy = prng.uniform(size * 0.25, size * 0.75)
        radius = prng.uniform(size * 0.05, size * 0.15)
        top = prng.uniform(0.2, 0.4)
        heights += top * np.exp(-((xs - hx) ** 2 + (ys - hy) ** 2) / (2 * radius ** 2))

    return HeightField.from_array(heights)


def main():
    """Demonstrate a progressive erosion run."""
    configure_logging(level="WARNING", fmt="plain")

    print("Py-Erosion Demo")
    print("=" * 40)

    size = 128
    seed = "demo123"
    field = build_island(size, seed)
    low, high = field.height_range()
    print(f"\nGenerated {size}x{size} island")
    print(f"  Height range: {low:.3f}-{high:.3f}")

    params = TerrainGenerationParams(seed=seed, steps_per_slice=500, geology=GeologySettings(rock_hardness=0.4))
    pipeline = ErosionPipeline(
        field,
        params,
        hydraulic_options=HydraulicErosionOptions(num_droplets=5000),
        thermal_options=ThermalErosionOptions(iterations=5),
        river_options=RiverOptions(min_source_height=0.6, source_radius=8),
    )

    print("\nEroding...")
    last_stage = None
    slices = 0
    while pipeline.step():
        slices += 1
        if pipeline.stage != last_stage:
            last_stage = pipeline.stage
            print(f"  {last_stage.value:<15} {pipeline.progress * 100:5.1f}%")

    result = pipeline.result()
    print(f"Finished in {slices} slices")

    print("\nTerrain:")
    print("-" * 30)
    print(f"  Volume before: {result.before.total_volume:.2f}")
    print(f"  Volume after:  {result.after.total_volume:.2f}")
    print(f"  Net change:    {result.net_volume_change:+.4f}")
    print(f"  Steepest drop: {result.before.max_drop:.4f} -> {result.after.max_drop:.4f}")
    if result.hydraulic is not None:
        print(f"  Droplets: {result.hydraulic.droplets} (eroded {result.hydraulic.eroded:.3f})")

    print(f"\nRivers ({len(result.rivers)}):")
    print("-" * 30)
    for river in result.rivers:
        mouth = f"({river.mouth[0]:.1f}, {river.mouth[1]:.1f})" if river.mouth else "none"
        print(
            f"  #{river.id}: source {river.source}, {len(river)} points, "
            f"length {river.length:.1f}, mouth {mouth}, {river.termination}"
        )

    # Height distribution
    bins = [0.0, 0.1, 0.2, 0.3, 0.5, 0.7, 0.9, 1.5]
    hist, _ = np.histogram(result.heights, bins=bins)
    print("\nHeight distribution:")
    for i in range(len(bins) - 1):
        bar = "#" * int(hist[i] / max(hist.max(), 1) * 20)
        print(f"  {bins[i]:.1f}-{bins[i + 1]:.1f}: {bar} ({hist[i]})")


if __name__ == "__main__":
    main()
