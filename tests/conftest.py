"""Shared fixtures: temporary data dir, services and a fake APNs provider."""
import base64

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from reattachd.config import Settings
from reattachd.main import create_app
from reattachd.models.push_endpoint import PushRegistry
from reattachd.services.apns import ApnsClient
from reattachd.services.device_trust import DeviceTrustService
from reattachd.services.notifications import TOKENS_FILE, NotificationService
from reattachd.store import JsonStore

BUNDLE_ID = "com.example.reattach"


class FakeApns:
    """httpx handler standing in for api.push.apple.com."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, tuple[int, str]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.url.path.rsplit("/", 1)[-1]
        if token in self.failures:
            status, reason = self.failures[token]
            return httpx.Response(status, json={"reason": reason})
        return httpx.Response(200, headers={"apns-id": f"id-{len(self.requests)}"})

    def delivered_to(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests]


@pytest.fixture(scope="session")
def apns_key() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "reattachd"


@pytest.fixture
def config(data_dir):
    return Settings(
        DATA_DIR=data_dir,
        APNS_KEY_BASE64=None,
        APNS_KEY_ID=None,
        APNS_TEAM_ID=None,
        APNS_BUNDLE_ID=None,
    )


@pytest.fixture
def apns_config(data_dir, apns_key):
    return Settings(
        DATA_DIR=data_dir,
        APNS_KEY_BASE64=base64.b64encode(apns_key.encode()).decode(),
        APNS_KEY_ID="KEY123",
        APNS_TEAM_ID="TEAM123",
        APNS_BUNDLE_ID=BUNDLE_ID,
    )


@pytest.fixture
def trust(data_dir):
    return DeviceTrustService.from_data_dir(data_dir)


@pytest.fixture
def fake_apns():
    return FakeApns()


@pytest.fixture
def apns_client(apns_key, fake_apns):
    return ApnsClient(apns_key, "KEY123", "TEAM123", BUNDLE_ID, transport=httpx.MockTransport(fake_apns))


@pytest.fixture
def notifications(data_dir, apns_client):
    return NotificationService(JsonStore(data_dir / TOKENS_FILE, PushRegistry), apns_client)


@pytest.fixture
def client(config, trust, notifications):
    app = create_app(config, trust=trust, notification_service=notifications)
    with TestClient(app) as test_client:
        yield test_client
