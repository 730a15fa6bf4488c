import asyncio
import json

import httpx
import pytest

from backend.app import config, services


def make_provider(**overrides):
    values = {
        "api_key": "gsk_test",
        "api_key_source": "env",
        "candidate_models": ("model-a", "model-b", "model-c"),
    }
    values.update(overrides)
    return config.ProviderConfig(**values)


def recording_transport(responses):
    """Returns (transport, calls); responses maps model name -> httpx.Response or exception."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append(body)
        outcome = responses[body["model"]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return httpx.MockTransport(handler), calls


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def test_is_pdf():
    assert services.is_pdf("application/pdf", "notes.txt")
    assert services.is_pdf("application/pdf; charset=binary", None)
    assert services.is_pdf("application/octet-stream", "Minutes.PDF")
    assert not services.is_pdf("text/plain", "notes.txt")
    assert not services.is_pdf(None, None)


def test_plain_text_extraction_removes_temp_file(tmp_path):
    upload = services.stage_upload(b"Alice: hello\nBob: hi", "notes.txt", "text/plain", tmp_path)
    assert upload.path.exists()

    text = services.extract_transcript_text(upload)

    assert text == "Alice: hello\nBob: hi"
    assert not upload.path.exists()


def test_invalid_utf8_is_replaced(tmp_path):
    upload = services.stage_upload(b"caf\xe9 meeting", "notes.txt", "text/plain", tmp_path)
    assert services.extract_transcript_text(upload) == "caf\ufffd meeting"


def test_pdf_extraction(tmp_path, pdf_bytes):
    upload = services.stage_upload(pdf_bytes, "minutes.pdf", "application/pdf", tmp_path)
    text = services.extract_transcript_text(upload)
    assert "Quarterly planning meeting" in text
    assert not upload.path.exists()


def test_invalid_pdf_raises_processing_error_and_cleans_up(tmp_path):
    upload = services.stage_upload(b"definitely not a pdf", "broken.pdf", "application/octet-stream", tmp_path)

    with pytest.raises(services.TranscriptProcessingError):
        services.extract_transcript_text(upload)

    assert not upload.path.exists()


def test_cleanup_failure_is_not_fatal(tmp_path):
    upload = services.stage_upload(b"text", "notes.txt", "text/plain", tmp_path)
    upload.path.unlink()
    services.remove_upload(upload)


def test_build_messages_uses_default_instruction_when_blank():
    messages = services.build_messages("transcript body", "   ")
    assert messages[0] == {"role": "system", "content": config.SYSTEM_PROMPT}
    assert config.DEFAULT_INSTRUCTION in messages[1]["content"]
    assert "transcript body" in messages[1]["content"]


def test_simulated_summary_is_deterministic():
    transcript = "x" * 400
    first = services.build_simulated_summary(transcript, "Focus on risks")
    second = services.build_simulated_summary(transcript, "Focus on risks")
    assert first == second
    assert "Focus on risks" in first
    assert "x" * 250 in first
    assert "x" * 251 not in first


def test_summarize_without_key_returns_simulated_summary():
    transport, calls = recording_transport({})
    summary = asyncio.run(
        services.summarize_text("Talked about budget.", "Be brief", config.ProviderConfig(), transport=transport)
    )
    assert calls == []
    assert summary == services.build_simulated_summary("Talked about budget.", "Be brief")


def test_summarize_returns_first_successful_model():
    transport, calls = recording_transport({
        "model-a": httpx.Response(500, json={"error": {"message": "boom"}}),
        "model-b": completion("  ## Summary\n- Budget approved  "),
        "model-c": completion("should not be called"),
    })

    summary = asyncio.run(services.summarize_text("Budget talk", "Be brief", make_provider(), transport=transport))

    assert summary == "## Summary\n- Budget approved"
    assert [call["model"] for call in calls] == ["model-a", "model-b"]


def test_summarize_sends_fixed_parameters():
    transport, calls = recording_transport({"model-a": completion("ok")})
    provider = make_provider(max_tokens=321)

    asyncio.run(services.summarize_text("Budget talk", None, provider, transport=transport))

    assert calls[0]["temperature"] == config.SUMMARY_TEMPERATURE
    assert calls[0]["max_tokens"] == 321
    assert calls[0]["messages"][1]["content"].endswith("--- END TRANSCRIPT ---")


def test_summarize_skips_empty_content_and_network_errors():
    transport, calls = recording_transport({
        "model-a": completion("   "),
        "model-b": httpx.ConnectError("connection refused"),
        "model-c": completion("Final summary"),
    })

    summary = asyncio.run(services.summarize_text("text", None, make_provider(), transport=transport))

    assert summary == "Final summary"
    assert len(calls) == 3


def test_summarize_falls_back_when_every_model_fails():
    transport, calls = recording_transport({
        "model-a": httpx.Response(401, json={"error": "invalid key"}),
        "model-b": httpx.Response(200, json={"unexpected": True}),
        "model-c": httpx.Response(200, text="not json"),
    })

    summary = asyncio.run(services.summarize_text("Roadmap review", "Focus", make_provider(), transport=transport))

    assert len(calls) == 3
    assert summary == services.build_simulated_summary("Roadmap review", "Focus")


def test_generate_summary_requires_upload(settings):
    with pytest.raises(services.MissingTranscriptError):
        asyncio.run(services.generate_summary(None, "prompt", settings))


def test_generate_summary_rejects_blank_text(settings):
    upload = services.stage_upload(b"  \n\t ", "blank.txt", "text/plain", settings.upload_dir)
    with pytest.raises(services.EmptyTranscriptError):
        asyncio.run(services.generate_summary(upload, "prompt", settings))
    assert not upload.path.exists()


def test_failed_staging_write_leaves_no_file(tmp_path, monkeypatch):
    real_fdopen = services.os.fdopen

    class FullDisk:
        def __init__(self, fd, mode):
            self.handle = real_fdopen(fd, mode)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self.handle.close()
            return False

        def write(self, data):
            raise OSError(28, "No space left on device")

    monkeypatch.setattr(services.os, "fdopen", FullDisk)

    with pytest.raises(services.TranscriptProcessingError):
        services.stage_upload(b"Alice: hello", "notes.txt", "text/plain", tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_summarize_sends_key_to_chat_completions_endpoint():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return completion("ok")

    provider = make_provider(api_key="gsk_secret", api_base="https://groq.example.test/openai/v1")

    asyncio.run(services.summarize_text("Budget talk", None, provider, transport=httpx.MockTransport(handler)))

    (request,) = seen
    assert request.method == "POST"
    assert str(request.url) == "https://groq.example.test/openai/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer gsk_secret"
