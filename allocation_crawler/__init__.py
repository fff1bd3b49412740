"""
Allocation Crawler Service

Coordinates job discovery and application runs across independent agents
sharing one Redis: an apply lock per job, the job/run state machine and the
secondary indexes behind every listing.
"""

__version__ = "1.0.0"
