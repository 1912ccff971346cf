"""
Platform Landing Controller.

Ground-side controller that lands a multirotor drone on a (possibly moving)
platform: it tracks a fiducial marker, runs per-axis PID corrections and
talks to the drone and to the platform over serial/UDP links.
"""

__version__ = "0.1.0"
