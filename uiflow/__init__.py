"""
uiflow
------
Scripted UI flows against unstable single-page apps: ordered locator
candidates, bounded readiness waits, fallback interaction techniques and
per-step failure policies.
"""

__version__ = "0.1.0"
