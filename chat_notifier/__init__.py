"""Chat-platform notification delivery engine.

Turns task-management domain events into chat messages, deciding whether,
when and through which channel each recipient is notified.
"""
