"""
This module contains the configuration settings for the ToolRun supervisor.
It defines paths, retry policy, logging configuration and placeholder values.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
APP_SUPPORT_DIR = pathlib.Path(
    os.getenv("TOOLRUN_APP_SUPPORT_DIR", str(pathlib.Path.home() / ".toolrun"))
)

#* --- Application File Paths ---
INSTALLED_TOOLS_PATH = pathlib.Path(
    os.getenv("TOOLRUN_INSTALLED_TOOLS", str(APP_SUPPORT_DIR / "installed_tools.json"))
)
OVERRIDES_JSON_PATH = APP_SUPPORT_DIR / "overrides.json"

#* --- Tool Agent Layout ---
# Every tool agent lives at {APP_SUPPORT_DIR}/{tool_id}/agent
AGENT_EXECUTABLE_NAME = "agent"

#* --- Supervisor Settings ---
RETRY_DELAY_SECONDS = 5
GRACEFUL_SHUTDOWN_TIMEOUT = 5  # seconds before force-killing
STRICT_EXECUTABLE_MATCH = os.getenv("TOOLRUN_STRICT_EXECUTABLE_MATCH", "False").lower() in ('true', '1', 't')
# Pipe agent output into the log. Agents then die with the supervisor (broken pipe).
CAPTURE_AGENT_OUTPUT = os.getenv("TOOLRUN_CAPTURE_AGENT_OUTPUT", "False").lower() in ('true', '1', 't')

#* --- Command Placeholders ---
# TOOLRUN_PARAM_SERVER_URL=... becomes the {{SERVER_URL}} placeholder value.
COMMAND_PARAM_PREFIX = "TOOLRUN_PARAM_"
COMMAND_PARAMS = {
    key[len(COMMAND_PARAM_PREFIX):]: value
    for key, value in os.environ.items()
    if key.startswith(COMMAND_PARAM_PREFIX) and len(key) > len(COMMAND_PARAM_PREFIX)
}

#* --- Logging ---
# Grafana Loki (for observability)
LOKI_ENABLED = os.getenv("LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")
LOG_BUFFER_FLUSH_INTERVAL = 10

#* --- Application variables ---
VERBOSE_LOGGING = False
PROCESS_TITLE = "ToolRun - Supervisor"

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    "RETRY_DELAY_SECONDS",
    "GRACEFUL_SHUTDOWN_TIMEOUT",
    "LOG_BUFFER_FLUSH_INTERVAL",
}
