"""
Device Test Harness (dth) - Run compiled test actions on Android targets

Runs many independent test actions against a device or emulator with:
- Dependency-ordered task graphs with failure propagation
- Bounded parallel execution
- Content-addressed caching of dex and push steps
- Idempotent remote filesystem operations over adb
"""

__version__ = "0.1.0"
__package_name__ = "device-test-harness"
__short_name__ = "dth"
