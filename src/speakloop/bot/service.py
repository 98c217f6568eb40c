"""Conversational bot: persona commands, prompt building and answers."""

from __future__ import annotations

import re

from loguru import logger

from speakloop.bot.prompt import (
    DEFAULT_SYSTEM_TEMPLATE,
    NO_LONG_TERM_MEMORY,
    NO_MESSAGES,
    NO_SHORT_TERM_MEMORY,
    USER_TEMPLATE,
    build_prompt,
    format_msg,
)
from speakloop.config import Settings
from speakloop.gateway import ModelGateway
from speakloop.speaker.ai import AISpeaker
from speakloop.store import ConversationStore, Persona, PersonaRole, StoredTurn
from speakloop.types import Answer, Command, Utterance

BOT_PERSONA_RE = re.compile(r".*你是(?P<name>[^你]*)你(?P<profile>.*)")
MASTER_PERSONA_RE = re.compile(r".*我是(?P<name>[^我]*)我(?P<profile>.*)")


class Bot:
    """Answer utterances with the model and keep the conversation record."""

    def __init__(
        self,
        speaker: AISpeaker,
        gateway: ModelGateway,
        store: ConversationStore,
        settings: Settings,
    ) -> None:
        self.speaker = speaker
        self.gateway = gateway
        self.store = store
        self.settings = settings
        self.system_template = settings.system_template or DEFAULT_SYSTEM_TEMPLATE
        self.speaker.add_command(
            Command(
                name="bot_persona",
                match=lambda msg: BOT_PERSONA_RE.match(msg.text) is not None,
                run=self._update_bot_persona,
            )
        )
        self.speaker.add_command(
            Command(
                name="master_persona",
                match=lambda msg: MASTER_PERSONA_RE.match(msg.text) is not None,
                run=self._update_master_persona,
            )
        )

    def init(self) -> None:
        """Seed personas from settings on first run and attach to the speaker."""
        bot = self._persona("bot")
        self._persona("master")
        self.speaker.name = bot.name
        self.speaker.ask_ai = self.ask

    async def ask(self, utterance: Utterance) -> Answer:
        bot = self._persona("bot")
        master = self._persona("master")
        turns = self.store.recent_turns(self.settings.history_size)
        short_term = self.store.memories("short", limit=1)
        long_term = self.store.memories("long", limit=1)
        logger.info(
            "bot.ask bot={} master={} turns={} short_memory={} long_memory={}",
            bot.name,
            master.name,
            len(turns),
            bool(short_term),
            bool(long_term),
        )

        system_prompt = build_prompt(
            self.system_template,
            {
                "botName": bot.name,
                "botProfile": bot.profile.strip(),
                "masterName": master.name,
                "masterProfile": master.profile.strip(),
                "roomName": self.settings.room_name,
                "roomIntroduction": self.settings.room_description.strip(),
                "messages": _render_turns(turns),
                "shortTermMemory": short_term[0].text if short_term else NO_SHORT_TERM_MEMORY,
                "longTermMemory": long_term[0].text if long_term else NO_LONG_TERM_MEMORY,
            },
        )
        user_prompt = build_prompt(
            USER_TEMPLATE,
            {"message": format_msg(name=master.name, text=utterance.text, timestamp=utterance.timestamp / 1000)},
        )

        self.store.add_turn(
            StoredTurn(sender="master", name=master.name, text=utterance.text, timestamp=utterance.timestamp / 1000)
        )

        async def remember_answer(text: str) -> None:
            self.store.add_turn(StoredTurn(sender="bot", name=bot.name, text=text))
            logger.info("bot.answer.saved chars={}", len(text))

        stream = self.gateway.stream(user_prompt, system_prompt=system_prompt, on_finished=remember_answer)
        return Answer(stream=stream)

    async def _update_bot_persona(self, utterance: Utterance) -> None:
        match = BOT_PERSONA_RE.match(utterance.text)
        if match is None:
            return
        name = match.group("name").strip(" ，,。")
        persona = self._save_persona("bot", name, match.group("profile"))
        if persona is None:
            await self.speaker.response(text=f"召唤{name}失败，请稍后再试吧！", keep_alive=self.speaker.keep_alive)
            return
        self.speaker.name = persona.name
        await self.speaker.response(text=f"你好，我是{name}，很高兴认识你！", keep_alive=self.speaker.keep_alive)

    async def _update_master_persona(self, utterance: Utterance) -> None:
        match = MASTER_PERSONA_RE.match(utterance.text)
        if match is None:
            return
        name = match.group("name").strip(" ，,。")
        persona = self._save_persona("master", name, match.group("profile"))
        text = "好的主人，我记住了！" if persona is not None else "哎呀出错了，请稍后再试吧！"
        await self.speaker.response(text=text, keep_alive=self.speaker.keep_alive)

    def _save_persona(self, role: PersonaRole, name: str, profile: str) -> Persona | None:
        if not name:
            return None
        try:
            return self.store.update_persona(role, name=name, profile=profile.strip())
        except Exception:
            logger.exception("bot.persona.error role={}", role)
            return None

    def _persona(self, role: PersonaRole) -> Persona:
        persona = self.store.get_persona(role)
        if persona is not None:
            return persona
        if role == "bot":
            return self.store.update_persona("bot", name=self.settings.bot_name, profile=self.settings.bot_profile)
        return self.store.update_persona(
            "master", name=self.settings.master_name, profile=self.settings.master_profile
        )


def _render_turns(turns: list[StoredTurn]) -> str:
    if not turns:
        return NO_MESSAGES
    return "\n".join(format_msg(name=turn.name, text=turn.text, timestamp=turn.timestamp) for turn in turns)
