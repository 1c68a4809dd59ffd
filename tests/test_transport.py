from __future__ import annotations

from types import SimpleNamespace

import pytest
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup

from gatebot.bot.transport import AiogramTransport
from gatebot.services.exceptions import DownloadFailed


class DummyBot:
    def __init__(self, file_path: str | None = "documents/file.txt", typing_error: Exception | None = None):
        self.sent: list[dict] = []
        self.photos: list[dict] = []
        self.actions: list[tuple] = []
        self.file_path = file_path
        self.typing_error = typing_error

    async def send_message(self, **kwargs):
        self.sent.append(kwargs)

    async def send_photo(self, **kwargs):
        self.photos.append(kwargs)

    async def send_chat_action(self, chat_id, action):
        if self.typing_error is not None:
            raise self.typing_error
        self.actions.append((chat_id, action))

    async def get_file(self, file_id):
        return SimpleNamespace(file_id=file_id, file_path=self.file_path)

    async def download_file(self, file_path, destination):
        destination.write(b"payload:" + file_path.encode())


@pytest.mark.asyncio
async def test_send_text_chunks_plain_text():
    bot = DummyBot()
    transport = AiogramTransport(bot, chunk_limit=11)

    await transport.send_text("42", "first line\nsecond line")

    assert [item["text"] for item in bot.sent] == ["first line", "second line"]
    assert all(item["parse_mode"] is None for item in bot.sent)
    assert all(item["chat_id"] == "42" for item in bot.sent)


@pytest.mark.asyncio
async def test_send_text_passes_options():
    bot = DummyBot()

    await AiogramTransport(bot).send_text("42", "results", disable_web_page_preview=True)

    assert bot.sent[0]["disable_web_page_preview"] is True


@pytest.mark.asyncio
async def test_send_choices_builds_inline_keyboard():
    bot = DummyBot()

    await AiogramTransport(bot).send_choices(
        "42", "Choose", [("Gemini", "setmodel:gemini"), ("Claude", "setmodel:claude"), ("GPT", "setmodel:openai")]
    )

    markup = bot.sent[0]["reply_markup"]
    assert isinstance(markup, InlineKeyboardMarkup)
    assert [len(row) for row in markup.inline_keyboard] == [2, 1]
    assert markup.inline_keyboard[0][1].callback_data == "setmodel:claude"


@pytest.mark.asyncio
async def test_send_menu_builds_reply_keyboard():
    bot = DummyBot()

    await AiogramTransport(bot).send_menu("42", "Hi", ["A", "B", "C", "D"])

    markup = bot.sent[0]["reply_markup"]
    assert isinstance(markup, ReplyKeyboardMarkup)
    assert markup.resize_keyboard is True
    assert [[button.text for button in row] for row in markup.keyboard] == [["A", "B"], ["C", "D"]]


@pytest.mark.asyncio
async def test_send_photo():
    bot = DummyBot()

    await AiogramTransport(bot).send_photo("42", "https://example.com/fox.jpg", caption="fox")

    assert bot.photos == [{"chat_id": "42", "photo": "https://example.com/fox.jpg", "caption": "fox"}]


@pytest.mark.asyncio
async def test_typing_failure_is_ignored():
    bot = DummyBot(typing_error=TelegramBadRequest(method=None, message="chat not found"))

    await AiogramTransport(bot).send_typing("42")

    assert bot.actions == []


@pytest.mark.asyncio
async def test_download_reads_file_bytes():
    data = await AiogramTransport(DummyBot()).download("file-1")

    assert data == b"payload:documents/file.txt"


@pytest.mark.asyncio
async def test_download_without_file_path_fails():
    with pytest.raises(DownloadFailed):
        await AiogramTransport(DummyBot(file_path=None)).download("file-1")
