"""
Runtime layer - per-tile health supervision and grid coordination.

Everything in this package runs on a single cooperative event loop: timers
and transport events arrive as callbacks, and no component takes locks.
"""
