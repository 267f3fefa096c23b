"""OAuth and usage endpoint constants.

Two OAuth clients exist:

1. The application client, used by the interactive login of this monitor
   (console redirect, manual code paste).
2. The Claude Code CLI client, whose tokens live in the platform keychain and
   are refreshed against the API host.

Tokens are never exchanged across clients.
"""

# Authorization server
OAUTH_AUTHORIZE_URL = "https://claude.ai/oauth/authorize"
OAUTH_REDIRECT_URI = "https://console.anthropic.com/oauth/code/callback"

# Application client
APP_CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
APP_TOKEN_URL = "https://console.anthropic.com/v1/oauth/token"

# Claude Code CLI client
CLI_CLIENT_ID = "claude-code"
CLI_TOKEN_URL = "https://api.anthropic.com/api/oauth/token"
CLI_KEYCHAIN_SERVICE = "Claude Code-credentials"

# Usage endpoint
USAGE_URL = "https://api.anthropic.com/api/oauth/usage"

# API headers
OAUTH_BETA_VERSION = "oauth-2025-04-20"
OAUTH_USER_AGENT = "claude-quota-monitor/0.3"

OAUTH_SCOPES = [
    "user:inference",
    "user:profile",
]

DEFAULT_TOKEN_EXPIRY_SECONDS = 3600
