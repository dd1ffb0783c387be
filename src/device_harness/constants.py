"""
Centralized constants for Device Test Harness.

Remote paths, timeouts and file filters shared across modules live here
to avoid duplication.
"""

# Directories that must never be created or walked past by ensure_directory
REMOTE_ROOT_SENTINELS = {"/", "/sdcard", "."}

# adb shell output fragments
NO_SUCH_FILE = "No such file or directory"
FILE_EXISTS = "File exists"

# Poll interval for wait_until, in seconds
POLL_INTERVAL_SECONDS = 1.0

# How long to wait for the device filesystem after boot
BOOT_TIMEOUT_SECONDS = 5 * 60

# Default cache locations
HOST_CACHE_DIR = "/tmp/dth-cache"
DEVICE_CACHE_DIR = "/sdcard/tmp/dth-cache"

# Default device layout
DEVICE_DIR = "/sdcard/dth"

# Large actions get this many times the regular timeout
LARGE_TIMEOUT_MULTIPLIER = 10

# Appended to every action command so the exit status survives adb shell
EXIT_MARKER = "__DTH_EXIT__:"

# Files pulled back from the target after an action runs
RETRIEVED_SUFFIXES = {".xml", ".json"}
RETRIEVED_EXCLUDED = {"prefs.xml"}
RETRIEVED_SUBDIRS = {"caliper-results"}

# Generic jar names skipped when deriving readable artifact names
BANNED_JAR_NAMES = {"classes", "javalib"}
