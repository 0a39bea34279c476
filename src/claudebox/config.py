"""Global configuration constants."""

import os
from pathlib import Path

# ── GitHub OAuth ───────────────────────────────────────────────────
# One GitHub App per trust tier. The elevated app is granted broader
# permissions (repository creation, administration).
GITHUB_CLIENT_ID = "Iv23liWHeR3R9yYlUhqm"
GITHUB_ELEVATED_CLIENT_ID = "Iv23lixNKn0ZUEkVwNzp"
GITHUB_SCOPE = "repo"
GITHUB_WEB_URL = os.environ.get("CLAUDEBOX_GITHUB_URL", "https://github.com").rstrip("/")
GITHUB_API_URL = os.environ.get("CLAUDEBOX_GITHUB_API", "https://api.github.com").rstrip("/")
GITHUB_DEVICE_CODE_URL = f"{GITHUB_WEB_URL}/login/device/code"
GITHUB_ACCESS_TOKEN_URL = f"{GITHUB_WEB_URL}/login/oauth/access_token"
GITHUB_USER_URL = f"{GITHUB_API_URL}/user"
GITHUB_API_HEADERS = {"Accept": "application/vnd.github.v3+json"}
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
SANDBOX_REPO_NAME = ".claude_sandbox"

# ── Token ──────────────────────────────────────────────────────────
DEVICE_CODE_POLL_INTERVAL = 5  # seconds, used when the provider omits one
SLOW_DOWN_PENALTY = 5  # extra seconds after a slow_down response
REQUEST_TIMEOUT = 30  # seconds
TOKEN_FILENAME = "github_tokens.json"
ELEVATED_TOKEN_FILENAME = "github_tokens_dangerous.json"

# ── Storage ────────────────────────────────────────────────────────
CLAUDEBOX_DIR = Path(os.environ.get("CLAUDEBOX_HOME", Path.home() / ".claudebox"))
TOOLS_DIRNAME = "tools"
SETTINGS_DIRNAME = "settings"

# ── Sandbox ────────────────────────────────────────────────────────
SANDBOX_HOSTNAME = "claudebox"
SANDBOX_HOME = "/root"
SANDBOX_WORKSPACE = "/workspace"
SANDBOX_USER = "root"
SANDBOX_LANG = "C.UTF-8"
SANDBOX_TERMINFO = "/lib/terminfo"
SANDBOX_NPM_PREFIX = "/opt/npm"
SANDBOX_CA_DIR = "/etc/ssl/certs"
SANDBOX_CA_FILE = f"{SANDBOX_CA_DIR}/ca-certificates.crt"
SANDBOX_RESOLV_CONF = "/etc/resolv.conf"
SANDBOX_INSTRUCTIONS = "/etc/claude-code/CLAUDE.md"

# Every tool's bin directory, highest precedence first.
SANDBOX_PATH_DIRS = (
    "/opt/npm/bin",
    "/opt/nodejs/bin",
    "/opt/gh_cli/bin",
    "/opt/build_tools/bin",
    "/opt/build_tools/tools",
    "/opt/build_tools/libexec/git-core",
    "/opt/bb2-x86_64-linux-gnu/wrappers",
    "/opt/bb2-tools/wrappers",
    "/opt/bb2-tools/bin",
    "/opt/juliaup/bin",
    "/usr/local/bin",
    "/usr/local/sbin",
    "/usr/bin",
    "/usr/sbin",
    "/bin",
    "/sbin",
)

# Superset of provider keys handed to every persona.
PROVIDER_API_KEY_VARS = (
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
)

# Host locations searched for a CA bundle, in order.
HOST_CA_BUNDLES = (
    Path("/etc/ssl/certs/ca-certificates.crt"),
    Path("/etc/pki/tls/certs/ca-bundle.crt"),
    Path("/etc/ssl/ca-bundle.pem"),
    Path("/etc/ssl/cert.pem"),
)
HOST_RESOLV_CONF = Path("/etc/resolv.conf")
