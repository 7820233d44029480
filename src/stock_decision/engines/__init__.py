"""Scoring and decision engines. Pure, synchronous and deterministic."""
