"""Tests for prompt building, response parsing and the HTTP text generator."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from anomaly_engine.ai.text_generation import HttpTextGenerator, build_prompt, parse_insights
from anomaly_engine.contracts import DetectionContext, UserRole


def _mock_client(response):
    mock_client = AsyncMock()
    mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


class TestParseInsights:
    def test_sections(self):
        response = (
            "Possible reasons:\n"
            "- Month-end close\n"
            "- Duplicate invoice\n"
            "\n"
            "Contributing factors:\n"
            "1. Manual entry\n"
            "2) Currency conversion\n"
        )
        insights = parse_insights(response)
        assert insights.reasons == ["Month-end close", "Duplicate invoice"]
        assert insights.factors == ["Manual entry", "Currency conversion"]

    def test_markdown_headings(self):
        insights = parse_insights("## Factors\n* Late posting\n## Reasons\n• Fraud")
        assert insights.factors == ["Late posting"]
        assert insights.reasons == ["Fraud"]

    def test_defaults_to_reasons_and_caps_at_three(self):
        insights = parse_insights("- a\n- b\n- c\n- d")
        assert insights.reasons == ["a", "b", "c"]
        assert insights.factors == []

    def test_prose_and_unrelated_sections_ignored(self):
        insights = parse_insights("This looks unusual.\nNext steps:\n- Call the client")
        assert insights.reasons == []
        assert insights.factors == []

    def test_duplicates_dropped(self):
        assert parse_insights("- same\n- same").reasons == ["same"]


class TestBuildPrompt:
    def test_includes_anomaly_details(self, make_anomaly):
        prompt = build_prompt(make_anomaly(), DetectionContext(user_role=UserRole.ASSOCIATE))
        assert "- Severity: HIGH" in prompt
        assert "amount: expected 100, got 150" in prompt
        assert "- User role: ASSOCIATE" in prompt
        assert "- Business impact: UNKNOWN" in prompt


class TestHttpTextGenerator:
    @patch("anomaly_engine.ai.text_generation.httpx.AsyncClient")
    @pytest.mark.asyncio
    async def test_json_response(self, mock_client_class):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.headers = {"content-type": "application/json"}
        mock_response.json.return_value = {"response": "- reason"}
        mock_client = _mock_client(mock_response)
        mock_client_class.return_value = mock_client

        generator = HttpTextGenerator("http://llm.local/generate", timeout=5.0)
        text = await generator.generate("prompt", UserRole.PARTNER)

        assert text == "- reason"
        mock_client_class.assert_called_once_with(timeout=5.0)
        _, kwargs = mock_client.post.call_args
        assert kwargs["json"] == {"prompt": "prompt", "user_role": "PARTNER"}

    @patch("anomaly_engine.ai.text_generation.httpx.AsyncClient")
    @pytest.mark.asyncio
    async def test_plain_text_response(self, mock_client_class):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.headers = {"content-type": "text/plain"}
        mock_response.text = "- plain reason"
        mock_client_class.return_value = _mock_client(mock_response)

        text = await HttpTextGenerator("http://llm.local").generate("p", UserRole.MANAGER)
        assert text == "- plain reason"

    @patch("anomaly_engine.ai.text_generation.httpx.AsyncClient")
    @pytest.mark.asyncio
    async def test_http_error_propagates(self, mock_client_class):
        mock_response = MagicMock()
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "boom", request=MagicMock(), response=MagicMock(),
        )
        mock_client_class.return_value = _mock_client(mock_response)

        with pytest.raises(httpx.HTTPStatusError):
            await HttpTextGenerator("http://llm.local").generate("p", UserRole.MANAGER)
