"""Constants for dbzip."""

# Lock naming
DEFAULT_LOCK_ID = "{5b0d7c1e-8a4f-4c61-9d3e-2f6a0b9e7d41}"  # fixed application id
GLOBAL_NAMESPACE = "Global"
LOCK_DIR_NAME = "dbzip-locks"
LOCK_FILE_MODE = 0o666
LOCK_DIR_MODE = 0o777
LOCK_POLL_INTERVAL = 0.05

# Backup defaults
ARTIFACT_TIMESTAMP_FORMAT = "%Y_%m_%d_%H%M%S"
DEFAULT_EXPIRATION_DAYS = 7
BACKUP_STATEMENT_TIMEOUT = 4 * 60 * 60  # 4 hours
SQLCMD_LOGIN_TIMEOUT = 30
SQLCMD_QUERY_TIMEOUT = 60

# Archiving
COPY_CHUNK_SIZE = 1024 * 1024
DEFAULT_COMPRESSION_LEVEL = 6

# Process exit codes
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_INPUT = 2
EXIT_LOCK_SKIPPED = 3

CONFIG_FILE_NAME = "dbzip.toml"
CONFIG_ENV_VAR = "DBZIP_CONFIG"
