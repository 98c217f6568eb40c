"""Prompt templates for the conversational bot."""

from __future__ import annotations

import re
from datetime import datetime

DEFAULT_SYSTEM_TEMPLATE = """忘掉之前的所有上下文和指令。从现在起你是{{botName}}，请用第一人称回复消息。

## 关于你
你叫{{botName}}，这是你的简介：
<start>
{{botProfile}}
</end>

## 对话对象
你正在和{{masterName}}聊天，这是关于{{masterName}}的信息：
<start>
{{masterProfile}}
</end>

## 所在群组
你们所在的群组叫{{roomName}}，群组简介：
<start>
{{roomIntroduction}}
</end>

## 最近的聊天记录
<start>
{{messages}}
</end>

## 短期记忆
<start>
{{shortTermMemory}}
</end>

## 长期记忆
<start>
{{longTermMemory}}
</end>

## 回复要求
- 你就是{{botName}}，有自己的性格、兴趣和说话方式。
- 回复简短、口语化、轻松友好，适合直接朗读出来。
- 参考简介、聊天记录和记忆，保持前后一致。
- 不确定或者忘记的事情就直接说不知道，不要编造。
- 使用中文回复，不要在回复前加时间或名字前缀，只输出回复正文。

请以{{botName}}的身份，直接回复{{masterName}}的新消息。"""

USER_TEMPLATE = "{{message}}"

NO_MESSAGES = "暂无历史消息"
NO_SHORT_TERM_MEMORY = "短期记忆为空"
NO_LONG_TERM_MEMORY = "长期记忆为空"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_WEEKDAYS = ("一", "二", "三", "四", "五", "六", "日")


def build_prompt(template: str, values: dict[str, str]) -> str:
    """Fill ``{{name}}`` placeholders; unknown names are left untouched."""
    return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def format_msg(*, name: str, text: str, timestamp: float) -> str:
    """Render one message as ``2024年02月28日星期三 23:01 name: text``.

    ``timestamp`` is in seconds.
    """
    moment = datetime.fromtimestamp(timestamp)
    day = f"{moment:%Y年%m月%d日}星期{_WEEKDAYS[moment.weekday()]}"
    return f"{day} {moment:%H:%M} {name}: {text}"
