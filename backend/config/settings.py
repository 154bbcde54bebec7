from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path

# Get absolute path to backend directory (config/settings.py -> backend/)
_backend_dir = Path(__file__).parent.parent
_env_local = _backend_dir / '.env.local'
_env_file = _backend_dir / '.env'


class Settings(BaseSettings):
    """Application settings"""

    AWS_REGION: str = "us-east-1"

    # DynamoDB tables (names injected by the CDK stack in Lambda)
    MESSAGES_TABLE: str = "DentiPal-Messages"
    CONVERSATIONS_TABLE: str = "DentiPal-Conversations"
    CONNECTIONS_TABLE: str = "DentiPal-Connections"
    CLINICS_TABLE: str = ""  # Optional - clinic display name lookup

    # Cognito
    USER_POOL_ID: str = ""  # Needed for AdminGetUser name lookups
    COGNITO_APP_CLIENT_ID: str = ""
    VERIFY_TOKEN_SIGNATURE: bool = False  # True: verify access tokens against the pool JWKS

    # WebSocket API management endpoint: https://{api-id}.execute-api.{region}.amazonaws.com/{stage}
    # Only needed outside the WebSocket handler (the handler derives it from the request context)
    WS_ENDPOINT: str = ""

    # EventBridge
    EVENT_BUS_NAME: str = "default"
    EVENT_SOURCE: str = "denti-pal.api"

    # Messaging
    NAME_CACHE_SIZE: int = 512
    CONNECTION_TTL_SECONDS: int = 60 * 60 * 24  # 24 hours
    DISPATCH_MAX_WORKERS: int = 8

    # CORS - Will be parsed from environment variable string
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    class Config:
        # Prioritize .env.local for local development, fallback to .env
        # Use absolute paths to avoid working directory issues
        env_file = str(_env_local) if _env_local.exists() else str(_env_file)
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from environment file

    def get_allowed_origins(self) -> List[str]:
        """Parse and return CORS origins as a list"""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def cognito_issuer(self) -> str:
        """Issuer URL of the Cognito user pool (also the JWKS base URL)."""
        return f"https://cognito-idp.{self.AWS_REGION}.amazonaws.com/{self.USER_POOL_ID}"


settings = Settings()
