import logging
from typing import Any, Dict, List, Optional

import httpx
import requests
from pydantic import ValidationError

from config import ConfigurationError, Settings, VERIFY_URL, DEFAULT_TIMEOUT, build_policy, check_settings
from models import (
    MALFORMED_RESPONSE,
    POLICY_NOT_SATISFIED,
    TRANSPORT_FAILURE,
    Policy,
    Verdict,
    VerificationRequest,
    VerificationResponse,
    accepted,
    rejected,
)

logger = logging.getLogger("recaptcha")

MESSAGE = "Google reCAPTCHA verification failed"


def build_payload(request: VerificationRequest) -> Dict[str, str]:
    payload = {"secret": request["secret"], "response": request["token"]}
    if request.get("remote_ip"):
        payload["remoteip"] = request["remote_ip"]
    return payload


def failed_predicates(response: VerificationResponse, policy: Policy) -> List[str]:
    failed = []
    if response.success is not True:
        failed.append("success")
    if response.hostname != policy["expected_hostname"]:
        failed.append("hostname")
    if response.action != policy["expected_action"]:
        failed.append("action")
    if response.score is None or response.score < policy["min_score"]:
        failed.append("score")
    return failed


def decide(data: Any, policy: Policy) -> Verdict:
    """Turn a decoded siteverify body into a verdict for the given policy."""
    if not isinstance(data, dict):
        logger.warning("siteverify returned a non-object body: %s", type(data).__name__)
        return rejected(MALFORMED_RESPONSE)
    try:
        response = VerificationResponse.model_validate(data)
    except ValidationError as e:
        logger.warning("siteverify returned a malformed body (%d errors)", e.error_count())
        return rejected(MALFORMED_RESPONSE)

    failed = failed_predicates(response, policy)
    if failed:
        logger.info(
            "reCAPTCHA rejected: failed=%s action=%s score=%s error_codes=%s",
            ",".join(failed), response.action, response.score, ",".join(response.error_codes),
        )
        return rejected(POLICY_NOT_SATISFIED, failed, response)
    return accepted(response)


def verify(request: VerificationRequest, policy: Policy, timeout: float = DEFAULT_TIMEOUT,
           url: str = VERIFY_URL) -> Verdict:
    """
    Blocking check of one token against siteverify.
    Transport and decoding problems come back as a rejected verdict, never as an exception.
    """
    try:
        r = requests.post(url, data=build_payload(request), timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning("siteverify request failed: %s", type(e).__name__)
        return rejected(TRANSPORT_FAILURE)
    try:
        data = r.json()
    except ValueError:
        logger.warning("siteverify returned invalid JSON")
        return rejected(MALFORMED_RESPONSE)
    return decide(data, policy)


async def averify(request: VerificationRequest, policy: Policy, timeout: float = DEFAULT_TIMEOUT,
                  url: str = VERIFY_URL, transport: Optional[httpx.AsyncBaseTransport] = None) -> Verdict:
    """Same contract as verify() for async web layers."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            r = await client.post(url, data=build_payload(request))
            r.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("siteverify request failed: %s", type(e).__name__)
        return rejected(TRANSPORT_FAILURE)
    try:
        data = r.json()
    except ValueError:
        logger.warning("siteverify returned invalid JSON")
        return rejected(MALFORMED_RESPONSE)
    return decide(data, policy)


class ReCaptchaVerifier:
    """
    Verification capability handed to a web layer.

    Holds the secret and the policy defaults from Settings; the caller
    supplies the per-request bits (token, host, client IP).
    """

    message = MESSAGE

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        check_settings(settings)
        self.settings = settings
        self.transport = transport

    def _prepare(self, token: Optional[str], hostname: str, remote_ip: Optional[str],
                 action: Optional[str], min_score: Optional[float]):
        policy = build_policy(self.settings, hostname, action=action, min_score=min_score)
        request: VerificationRequest = {
            "token": (token or "").strip(),
            "secret": self.settings.secret_key,
            "remote_ip": remote_ip,
        }
        return request, policy

    def verify_token(self, token: Optional[str], hostname: str, remote_ip: Optional[str] = None,
                     action: Optional[str] = None, min_score: Optional[float] = None) -> Verdict:
        request, policy = self._prepare(token, hostname, remote_ip, action, min_score)
        if not request["token"]:
            logger.info("reCAPTCHA rejected: empty token")
            return rejected(MALFORMED_RESPONSE)
        return verify(request, policy, timeout=self.settings.timeout, url=self.settings.verify_url)

    async def averify_token(self, token: Optional[str], hostname: str, remote_ip: Optional[str] = None,
                            action: Optional[str] = None, min_score: Optional[float] = None) -> Verdict:
        request, policy = self._prepare(token, hostname, remote_ip, action, min_score)
        if not request["token"]:
            logger.info("reCAPTCHA rejected: empty token")
            return rejected(MALFORMED_RESPONSE)
        return await averify(request, policy, timeout=self.settings.timeout,
                             url=self.settings.verify_url, transport=self.transport)


__all__ = [
    "MESSAGE",
    "ConfigurationError",
    "ReCaptchaVerifier",
    "averify",
    "build_payload",
    "decide",
    "failed_predicates",
    "verify",
]
