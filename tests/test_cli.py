import importlib

import pytest
from conftest import FakeLLM, FakeVoice, make_settings, text_stream
from typer.testing import CliRunner

from speakloop.app.runtime import VoiceRuntime
from speakloop.gateway import ModelGateway
from speakloop.store import ConversationStore
from speakloop.types import Utterance

cli_module = importlib.import_module("speakloop.cli")


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: None)


def test_say_answers_one_utterance(monkeypatch: pytest.MonkeyPatch) -> None:
    voice = FakeVoice()
    llm = FakeLLM(text_stream("今天晴。"))
    requested: dict[str, object] = {}

    def _fake_build_runtime(model):
        requested["model"] = model
        settings = make_settings()
        return VoiceRuntime(settings, gateway=ModelGateway(llm), voice=voice)

    monkeypatch.setattr(cli_module, "_build_runtime", _fake_build_runtime)

    result = CliRunner().invoke(cli_module.app, ["say", "请问今天天气", "--model", "openai:gpt-4o"])

    assert result.exit_code == 0
    assert requested["model"] == "openai:gpt-4o"
    assert voice.spoken == ["让我先想想", "今天晴。", "我说完了"]


def test_say_reports_unmatched_utterance(monkeypatch: pytest.MonkeyPatch) -> None:
    voice = FakeVoice()
    runtime = VoiceRuntime(make_settings(), gateway=ModelGateway(FakeLLM()), voice=voice)
    monkeypatch.setattr(cli_module, "_build_runtime", lambda model: runtime)

    result = CliRunner().invoke(cli_module.app, ["say", "今天天气"])

    assert result.exit_code == 0
    assert voice.spoken == []
    assert runtime.session.is_running is False


def test_say_closes_store(monkeypatch: pytest.MonkeyPatch) -> None:
    closed: list[bool] = []

    class TrackingStore(ConversationStore):
        def close(self) -> None:
            closed.append(True)
            super().close()

    runtime = VoiceRuntime(make_settings(), gateway=ModelGateway(FakeLLM()), voice=FakeVoice(), store=TrackingStore())
    monkeypatch.setattr(cli_module, "_build_runtime", lambda model: runtime)

    result = CliRunner().invoke(cli_module.app, ["say", "今天天气"])

    assert result.exit_code == 0
    assert closed == [True]


def test_invalid_model_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "get_settings", lambda: make_settings(model="gpt-4o-mini"))

    result = CliRunner().invoke(cli_module.app, ["say", "请问今天天气"])

    assert result.exit_code == 1
    assert "provider:model" in result.output


def test_chat_runs_prompt_source(monkeypatch: pytest.MonkeyPatch) -> None:
    voice = FakeVoice()
    runtime = VoiceRuntime(make_settings(), gateway=ModelGateway(FakeLLM(text_stream("好的。"))), voice=voice)
    monkeypatch.setattr(cli_module, "_build_runtime", lambda model: runtime)
    monkeypatch.setattr(cli_module, "PromptSession", lambda: object())

    async def _fake_prompt_utterances(_session):
        yield Utterance(text="请问今天天气")

    monkeypatch.setattr(cli_module, "_prompt_utterances", _fake_prompt_utterances)

    result = CliRunner().invoke(cli_module.app, ["chat"])

    assert result.exit_code == 0
    assert voice.spoken == ["让我先想想", "好的。", "我说完了"]
    assert runtime.session.is_running is False
