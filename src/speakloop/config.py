"""Configuration management for speakloop."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BOT_NAME = "傻妞"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SPEAKLOOP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model gateway
    model: str = Field(default="openai:gpt-4o-mini", description="Model in provider:model format")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=1024, description="Maximum tokens for one answer")
    first_submit_timeout_seconds: float = Field(
        default=3.0, description="Seconds to wait for the first streamed token before giving up"
    )
    max_sentence_length: int = Field(default=100, description="Longest chunk handed to the voice at once")
    history_size: int = Field(default=10, description="Recent turns included in the prompt")

    # Persona
    bot_name: str = Field(default=DEFAULT_BOT_NAME, description="Device name, used by wake/exit phrases")
    bot_profile: str = Field(default="性别女，性格乖巧可爱，喜欢搞怪，爱吃醋。")
    master_name: str = Field(default="主人")
    master_profile: str = Field(default="")
    room_name: str = Field(default="客厅")
    room_description: str = Field(default="家里的智能音箱对话")
    system_template: str | None = Field(default=None, description="Override for the system prompt template")

    # Commands
    call_ai_keywords: list[str] = Field(default_factory=lambda: ["请", "你", DEFAULT_BOT_NAME])
    wake_up_keywords: list[str] = Field(default_factory=lambda: ["打开", "进入", "召唤"])
    exit_keywords: list[str] = Field(default_factory=lambda: ["关闭", "退出", "再见"])
    switch_speaker_keywords: list[str] | None = Field(default=None, description="Voice switch prefixes")

    # Phrases
    on_enter_ai: list[str] = Field(default_factory=lambda: ["你好，我是傻妞，很高兴认识你"])
    on_exit_ai: list[str] = Field(default_factory=lambda: ["傻妞已退出"])
    on_ai_asking: list[str] = Field(default_factory=lambda: ["让我先想想", "请稍等"])
    on_ai_replied: list[str] = Field(default_factory=lambda: ["我说完了", "还有其他问题吗"])
    on_ai_error: list[str] = Field(default_factory=lambda: ["啊哦，出错了，请稍后再试吧！"])

    # Playback
    audio_active: str | None = Field(default=None, description="Cue played when the answer starts")
    audio_error: str | None = Field(default=None, description="Cue played when the answer failed")
    audio_beep: bool = Field(default=False, description="Device beeps on its own after answers")
    stream_response: bool = Field(default=True, description="Speak answers while they stream")
    console_chars_per_second: float = Field(default=24.0, description="Speaking rate of the console voice")

    # Storage and logging
    store_path: str = Field(default=":memory:", description="SQLite database path for turns and personas")
    log_level: str = Field(default="INFO", description="Log level")


def get_settings() -> Settings:
    """Get application settings.

    Returns:
        Settings instance loaded from the environment and ``.env``.
    """
    return Settings()
