"""Clinical decision-support logic for patient health insights.

This package derives trends, interpretations, care gap priorities, a composite
health score and textual insights from a snapshot of clinical records. Every
analysis function is pure and receives the evaluation time explicitly.
"""
