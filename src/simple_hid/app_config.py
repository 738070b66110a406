# Application Details
APP_NAME = "SimpleHID"

# Logging
LOG_LEVEL_ENV_VAR = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# hidapi transport defaults
HID_INPUT_REPORT_READ_SIZE = 64  # Largest full-speed interrupt report
HID_READ_TIMEOUT_MS = 100  # Bounds how long close() waits for the reader
HID_FEATURE_REPORT_SIZE = 64  # Excluding the leading report ID byte
MONITOR_POLL_INTERVAL_S = 1.0  # hid.enumerate() diff period for connect/disconnect
