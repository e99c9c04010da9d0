"""Test package for the Codeforces Progress Tracker.

Covers the Codeforces client, analytics, database operations, sync and
reminder jobs, the scheduler and monitor, roster management and the CLI.
"""
