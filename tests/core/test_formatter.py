import json

import pytest

from defi_copilot.core.formatter import (
    DEFAULT_ERROR_EXPLANATION,
    DEFAULT_RESPONSE,
    ResponseFormatter,
)
from defi_copilot.core.intent import SystemIntent


class TestResponseFormatter:

    @pytest.mark.asyncio
    async def test_format_response_sends_context(self, scripted_llm):
        llm = scripted_llm("### Supported Networks\n- **Status**: Success")
        formatter = ResponseFormatter(llm)

        text = await formatter.format_response(SystemIntent(action="networks"), result=[{"name": "Avalanche"}])

        assert text.startswith("### Supported Networks")
        call = llm.calls[0]
        assert call["temperature"] == 0.7
        assert call["json_mode"] is False
        assert "#### Transaction Status" in call["messages"][0].content
        context = json.loads(call["messages"][1].content)
        assert context["intent"] == {"agent": "system", "action": "networks", "parameters": {}}
        assert context["result"] == [{"name": "Avalanche"}]
        assert "error" not in context

    @pytest.mark.asyncio
    async def test_format_response_includes_error(self, scripted_llm):
        llm = scripted_llm("### Error")
        formatter = ResponseFormatter(llm)

        await formatter.format_response(SystemIntent(action="networks"), error="system action failed: boom")

        context = json.loads(llm.calls[0]["messages"][1].content)
        assert context["error"] == "system action failed: boom"
        assert "result" not in context

    @pytest.mark.asyncio
    async def test_empty_completion_uses_default(self, scripted_llm):
        formatter = ResponseFormatter(scripted_llm(""))

        assert await formatter.format_response(SystemIntent(action="help")) == DEFAULT_RESPONSE

    @pytest.mark.asyncio
    async def test_explain_error(self, scripted_llm):
        llm = scripted_llm("### Request Failed\n#### Error Details")
        formatter = ResponseFormatter(llm)

        text = await formatter.explain_error(ValueError("bad input"), "Failed to process request")

        assert text.startswith("### Request Failed")
        payload = json.loads(llm.calls[0]["messages"][1].content)
        assert payload["error"] == "bad input"
        assert payload["context"] == "Failed to process request"
        assert "#### Resolution" in llm.calls[0]["messages"][0].content

    @pytest.mark.asyncio
    async def test_explain_error_default(self, scripted_llm):
        formatter = ResponseFormatter(scripted_llm(None))

        assert await formatter.explain_error(RuntimeError("x"), "ctx") == DEFAULT_ERROR_EXPLANATION
