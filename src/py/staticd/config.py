# --
# Compiled-in configuration: there are no flags, environment variables or
# configuration files, edit these values to change how the server runs.

USE_HTTPS: bool = True

HOST: str = "localhost"

PORT: int = 3000

# Both are relative to the working directory, and only used when
# `USE_HTTPS` is set.
CERT_PATH: str = "ssl/default.cert"
KEY_PATH: str = "ssl/default.key"

LOG_REQUESTS: bool = True

# Requests crossing these limits are rejected, and their connection closed.
MAX_LINE_SIZE: int = 8_192
MAX_HEADERS: int = 100
MAX_BODY_SIZE: int = 1_048_576

# EOF
