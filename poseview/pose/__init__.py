"""
Pose estimation and joint-angle utilities.

This package defines a model-agnostic estimator interface, the MediaPipe backend,
the async adapter used by the session, and the pure angle engine.
"""
