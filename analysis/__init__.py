"""
Looking-accuracy analysis package

- metrics.py: Per-timepoint accuracy of target looking
- group.py: Two-stage aggregation, window summaries and condition statistics
- viz.py: Timecourse and window-accuracy figures
"""
