import aiohttp
import pytest

from modguard.services.detection_client import DetectionEngineError, HttpDetectionEngine
from modguard.services.moderation.types import CheckResultType, ContentCheckRequest


REQUEST = ContentCheckRequest(user_id=42, chat_id=-100, message_text="buy now", message_id=9, is_user_trusted=True)


class DummyResponse:
    def __init__(self, status=200, payload=None, text=""):
        self.status = status
        self._payload = payload
        self._text = text

    async def json(self):
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass


class DummySession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json, timeout):
        self.calls.append((url, json))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.asyncio
async def test_check_posts_request_and_parses_result():
    session = DummySession(DummyResponse(payload={
        "is_spam": True,
        "net_confidence": 85,
        "max_confidence": 90,
        "check_results": [
            {"check_name": "OpenAI", "result": "Spam", "confidence": 90, "details": "crypto"},
            {"check_name": "StopWords", "result": "Ham", "confidence": 0},
        ],
    }))
    engine = HttpDetectionEngine(url="http://engine/check", session=session)

    result = await engine.check(REQUEST)

    url, body = session.calls[0]
    assert url == "http://engine/check"
    assert body["is_user_trusted"] is True
    assert body["message_text"] == "buy now"
    assert result.net_confidence == 85
    assert result.find_check("openai").result == CheckResultType.SPAM
    assert result.find_check("OpenAI").details == "crypto"


@pytest.mark.asyncio
async def test_camel_case_response_is_accepted():
    session = DummySession(DummyResponse(payload={
        "isSpam": False,
        "netConfidence": -20,
        "maxConfidence": 10,
        "checkResults": [{"checkName": "UrlBlocklist", "result": "Ham", "confidence": 0}],
    }))

    result = await HttpDetectionEngine(session=session).check(REQUEST)

    assert result.net_confidence == -20
    assert result.find_check("UrlBlocklist") is not None


@pytest.mark.asyncio
async def test_non_200_raises():
    session = DummySession(DummyResponse(status=503, text="unavailable"))

    with pytest.raises(DetectionEngineError, match="HTTP 503"):
        await HttpDetectionEngine(session=session).check(REQUEST)


@pytest.mark.asyncio
async def test_network_error_raises():
    session = DummySession(error=aiohttp.ClientConnectionError("refused"))

    with pytest.raises(DetectionEngineError):
        await HttpDetectionEngine(session=session).check(REQUEST)


@pytest.mark.asyncio
async def test_unknown_result_value_raises():
    session = DummySession(DummyResponse(payload={"check_results": [{"check_name": "X", "result": "Weird"}]}))

    with pytest.raises(DetectionEngineError, match="Некорректный ответ"):
        await HttpDetectionEngine(session=session).check(REQUEST)
