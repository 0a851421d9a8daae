"""Core engine — models, detection, planning, execution, verification."""
