"""Operator engine for manifest runs.

Evaluates manifest entries in order under fail-fast and dry-run policies,
tracks per-entry state, and drives runs across several manifests.

Package name uses 'manifest_opr' (short for operator) to avoid collision
with Python's stdlib 'operator' module.
"""
