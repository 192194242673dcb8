"""Threshold policy evaluation."""

from .evaluator import ThresholdPolicy, Verdict, evaluate

__all__ = ["ThresholdPolicy", "Verdict", "evaluate"]
