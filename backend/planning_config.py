"""
Planning engine settings, read from the environment with development defaults.
"""

import os

# Supported reporting years
PLANNING_MIN_YEAR = int(os.getenv("PLANNING_MIN_YEAR", "2020"))
PLANNING_MAX_YEAR = int(os.getenv("PLANNING_MAX_YEAR", "2100"))

# How many months back the waiting-balance walk may look for history
PLANNING_WAITING_MAX_DEPTH = int(os.getenv("PLANNING_WAITING_MAX_DEPTH", "36"))

PLANNING_LOG_LEVEL = os.getenv("PLANNING_LOG_LEVEL", "INFO")

# User recorded in the audit log when the caller does not name one
PLANNING_SYSTEM_USER = os.getenv("PLANNING_SYSTEM_USER", "system")
