import asyncio
from urllib.parse import parse_qs

import httpx

from models import MALFORMED_RESPONSE, POLICY_NOT_SATISFIED, TRANSPORT_FAILURE
from verifier import ReCaptchaVerifier, averify

REQUEST = {"token": "abc", "secret": "s", "remote_ip": "10.0.0.1"}


def transport_returning(status_code=200, json=None, content=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if content is not None:
            return httpx.Response(status_code, content=content)
        return httpx.Response(status_code, json=json)
    return httpx.MockTransport(handler)


def test_async_accept_and_payload(policy):
    seen = []
    t = transport_returning(json={"success": True, "hostname": "example.com", "action": "login", "score": 0.7},
                            seen=seen)
    verdict = asyncio.run(averify(REQUEST, policy, transport=t))
    assert verdict["accepted"] is True

    sent = parse_qs(seen[0].content.decode())
    assert sent == {"secret": ["s"], "response": ["abc"], "remoteip": ["10.0.0.1"]}
    assert seen[0].method == "POST"
    assert str(seen[0].url) == "https://www.google.com/recaptcha/api/siteverify"


def test_async_policy_reject(policy):
    t = transport_returning(json={"success": True, "hostname": "evil.com", "action": "login", "score": 0.9})
    verdict = asyncio.run(averify(REQUEST, policy, transport=t))
    assert verdict["reason"] == POLICY_NOT_SATISFIED


def test_async_connect_error(policy):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)
    verdict = asyncio.run(averify(REQUEST, policy, transport=httpx.MockTransport(handler)))
    assert verdict["reason"] == TRANSPORT_FAILURE


def test_async_timeout(policy):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)
    verdict = asyncio.run(averify(REQUEST, policy, transport=httpx.MockTransport(handler)))
    assert verdict["reason"] == TRANSPORT_FAILURE


def test_async_server_error(policy):
    verdict = asyncio.run(averify(REQUEST, policy, transport=transport_returning(status_code=500, json={})))
    assert verdict["reason"] == TRANSPORT_FAILURE


def test_async_invalid_json(policy):
    verdict = asyncio.run(averify(REQUEST, policy, transport=transport_returning(content=b"not json")))
    assert verdict["reason"] == MALFORMED_RESPONSE


def test_verifier_async_path(settings):
    t = transport_returning(json={"success": True, "hostname": "example.com", "action": "login", "score": 0.5})
    v = ReCaptchaVerifier(settings, transport=t)
    assert asyncio.run(v.averify_token("abc", hostname="example.com"))["accepted"] is True
    assert asyncio.run(v.averify_token("", hostname="example.com"))["reason"] == MALFORMED_RESPONSE
