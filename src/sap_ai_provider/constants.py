"""Constants shared across the SAP AI Core provider."""

PROVIDER_NAME = "sap-ai"

# Default configuration values
DEFAULT_DEPLOYMENT_ID = "d65d81e7c077e583"
DEFAULT_RESOURCE_GROUP = "default"
DEFAULT_MODEL_VERSION = "latest"
DEFAULT_BASE_URL = "https://api.ai.prod.eu-central-1.aws.ml.hana.ondemand.com/v2"

# OAuth configuration
OAUTH_ENDPOINT = "/oauth/token"
OAUTH_GRANT_TYPE = "client_credentials"

# Environment variable names
ENV_SERVICE_KEY = "SAP_AI_SERVICE_KEY"
ENV_TOKEN = "SAP_AI_TOKEN"
ENV_DEPLOYMENT_ID = "SAP_AI_DEPLOYMENT_ID"
ENV_RESOURCE_GROUP = "SAP_AI_RESOURCE_GROUP"
ENV_BASE_URL = "SAP_AI_BASE_URL"

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"
CONTENT_TYPE_EVENT_STREAM = "text/event-stream"

RESOURCE_GROUP_HEADER = "ai-resource-group"

# Model families that reject the `n` sampling parameter
MODEL_PREFIXES_WITHOUT_N = ("amazon--", "anthropic--")

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})
