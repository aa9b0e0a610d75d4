"""
Per-user notification feed plus the daily due-soon sweep.
"""
