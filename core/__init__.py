"""Core domain modules.

- types: immutable observation, finding and evaluation result models
- anomaly: statistical detectors, evaluation pipeline, history and alerts
"""
