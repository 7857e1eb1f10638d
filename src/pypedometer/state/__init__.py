"""State layer.

Sensor event models, the pure rollover/reboot policy, and the stores that
keep the reconciler's scalars durable across process restarts.
"""
