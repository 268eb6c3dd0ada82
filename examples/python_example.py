#!/usr/bin/env python3
"""End-to-end example: linearization files to Campbell diagram with turbocampbell.

Usage:
    python python_example.py [lin files ...]

Without arguments this example uses the synthetic sweep produced by
tests/test_data/generate_lin_files.py. For real analyses, pass the
``*.lin`` files of your own linearization runs.
"""

import logging
import sys
from pathlib import Path

import turbocampbell as tc

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

# Locate linearization files
TEST_DATA = Path(__file__).resolve().parent.parent / "tests" / "test_data" / "sweep"
if len(sys.argv) > 1:
    lin_files = sys.argv[1:]
else:
    lin_files = sorted(str(p) for p in TEST_DATA.glob("*.lin"))
    if not lin_files:
        print(f"No lin files found in {TEST_DATA}")
        print("Run tests/test_data/generate_lin_files.py first")
        sys.exit(1)

# --- 1. MBC transform, eigen-analysis and tracking ---
print(f"Processing {len(lin_files)} linearization files")
options = tc.DiagramOptions(max_freq=3.0, structural_only=True, cluster=True)
diagram, ops = tc.campbell_diagram(lin_files, options, on_error="skip")

# --- 2. Inspect the operating points ---
print("\nOperating points:")
for op in ops:
    freqs = ", ".join(f"{m.natural_freq_hz:.3f}" for m in op.modes[:5])
    print(f"  {Path(op.name).name}: {op.rotor_speed:5.2f} RPM  [{freqs}] Hz")

# --- 3. Inspect the tracked lines ---
print("\nCampbell lines:")
for line in diagram.lines:
    f = line.frequencies()
    z = 100 * line.damping()
    print(f"  {line.label}: {len(line.points)} points, "
          f"{f.min():.3f}-{f.max():.3f} Hz, damping {z.min():.1f}-{z.max():.1f}%")

# --- 4. Save results ---
out_dir = Path("campbell_output")
diagram.save(out_dir / "campbell.json")
tc.export_results(out_dir / "campbell.h5", ops, diagram)
print(f"\nSaved diagram and modal results to {out_dir}/")

# --- 5. Plot ---
print("Plotting Campbell diagram...")
fig = tc.plot_campbell(diagram, per_rev=[1, 3, 6], max_freq=3.0)
import matplotlib.pyplot as plt
plt.show()

print("\nDone.")
