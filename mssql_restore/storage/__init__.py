"""Engine-facing restore operations: query runners, manifest, planning, execution."""
