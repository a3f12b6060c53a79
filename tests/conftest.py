# tests/conftest.py
import json

import pytest
import requests

import verifier as verifier_mod
from config import Settings


class FakeResponse:
    def __init__(self, body=None, status_code=200, text=None):
        self.status_code = status_code
        self._text = text if text is not None else json.dumps(body)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        return json.loads(self._text)


class SiteverifyStub:
    """
    Stands in for requests.post. Tweak `body`, `status_code`, `text` or
    `error` before the call; every call is recorded in `calls`.
    """

    def __init__(self):
        self.body = {"success": True, "hostname": "example.com", "action": "login", "score": 0.9}
        self.status_code = 200
        self.text = None
        self.error = None
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.body, status_code=self.status_code, text=self.text)


@pytest.fixture
def settings():
    return Settings(secret_key="s", site_key="site-key", action="login", min_score=0.5, timeout=2.0)


@pytest.fixture
def policy():
    return {"expected_action": "login", "min_score": 0.5, "expected_hostname": "example.com"}


@pytest.fixture
def siteverify(monkeypatch):
    stub = SiteverifyStub()
    monkeypatch.setattr(verifier_mod.requests, "post", stub.post)
    return stub
