"""
Pytest configuration and fixtures for testing.

No test touches AWS:
- DynamoDB tables are MagicMock objects (store tests) or in-memory fakes
  from chat/__tests__/fakes.py (handler and service tests)
- Cognito / EventBridge / API Gateway clients are injected MagicMocks
- Token signature verification is off, so decode_access_token only reads
  the claims of tokens minted by fakes.make_access_token
"""
import os

import pytest

# Keep boto3 from looking for real credentials/regions when a test builds a client
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from chat.__tests__.fakes import make_access_token  # noqa: E402
from chat.names import _name_cache  # noqa: E402
from config.settings import settings  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Unverified tokens, no Cognito pool, no push endpoint, empty name cache."""
    monkeypatch.setattr(settings, "VERIFY_TOKEN_SIGNATURE", False)
    monkeypatch.setattr(settings, "COGNITO_APP_CLIENT_ID", "")
    monkeypatch.setattr(settings, "USER_POOL_ID", "")
    monkeypatch.setattr(settings, "CLINICS_TABLE", "")
    monkeypatch.setattr(settings, "WS_ENDPOINT", "")
    _name_cache.clear()
    yield
    _name_cache.clear()


@pytest.fixture
def clinic_token():
    """Access token of a ClinicAdmin at clinic C1."""
    return make_access_token("clinic-user-1", groups=["ClinicAdmin"], clinic_id="C1", email="front@smiles.example")


@pytest.fixture
def prof_token():
    """Access token of professional P1."""
    return make_access_token("P1", groups=["AssociateDentist"], given_name="Pat", email="pat@example.com")
