"""Execution core: value resolution, conditions, transforms, the step interpreter."""
