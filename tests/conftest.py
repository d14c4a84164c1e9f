import os
import tempfile

# config is read at import time
_tmp = tempfile.mkdtemp(prefix="photostock-test-")
os.environ.pop("DATABASE_URL", None)
os.environ["DB_PATH"] = os.path.join(_tmp, "test.db")
os.environ["DOWNLOAD_SECRET"] = "test-download-secret"
os.environ["API_TOKEN"] = "test-admin-token"
os.environ["BASE_URL"] = "https://shop.example"
os.environ["ASSET_ROOT"] = os.path.join(_tmp, "assets")

import httpx
import pytest
from fastapi.testclient import TestClient

from photostock.db import Base, SessionLocal, engine
from photostock.main import app, get_gateway, get_origin, get_signer
from photostock.models import Image
from photostock.origin import AssetOrigin
from photostock.payments import PaymentError
from photostock.utils import LinkSigner

SECRET = "test-download-secret"
T0 = 1_700_000_000


class FakeClock:
    def __init__(self, t: float = T0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


class FakeGateway:
    def __init__(self):
        self.sessions = {}
        self.created = []
        self.fail = False

    def create_checkout_session(self, image, buyer_email):
        if self.fail:
            raise PaymentError("stripe down")
        self.created.append((image.id, buyer_email))
        return f"cs_test_{len(self.created)}"

    def retrieve_session(self, session_id):
        if self.fail or session_id not in self.sessions:
            raise PaymentError("no such session")
        return self.sessions[session_id]


class Upstream:
    """Remote asset origin backed by httpx.MockTransport."""

    def __init__(self):
        self.responses = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) not in self.responses:
            return httpx.Response(404)
        return self.responses[str(request.url)](request)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signer(clock):
    return LinkSigner(SECRET, clock=clock)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def asset_root(tmp_path):
    root = tmp_path / "assets"
    root.mkdir()
    return root


@pytest.fixture
def client(signer, gateway, upstream, asset_root):
    origin = AssetOrigin(asset_root, transport=httpx.MockTransport(upstream.handler))
    with TestClient(app) as c:
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        app.dependency_overrides[get_signer] = lambda: signer
        app.dependency_overrides[get_gateway] = lambda: gateway
        app.dependency_overrides[get_origin] = lambda: origin
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db(client):
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def add_image(db):
    def _add(name="Sunset", price=4.99, url="https://cdn.example/sunset.jpg", content_type=None, preview_url=None):
        img = Image(name=name, price=price, url=url, content_type=content_type, preview_url=preview_url)
        db.add(img)
        db.commit()
        db.refresh(img)
        return img
    return _add
