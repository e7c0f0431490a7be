"""
Telegram Bot API Models

Only the subset of the Bot API the pipeline reads or writes.
Unknown fields are ignored so new API additions never break decoding.
"""
from typing import Any, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class TelegramModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class User(TelegramModel):
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Chat(TelegramModel):
    id: int
    type: str


class WebAppData(TelegramModel):
    data: str


class Message(TelegramModel):
    message_id: int
    chat: Chat
    from_user: Optional[User] = Field(None, alias="from")
    text: Optional[str] = None
    web_app_data: Optional[WebAppData] = None


class CallbackQuery(TelegramModel):
    id: str
    from_user: User = Field(..., alias="from")
    message: Optional[Message] = None
    data: Optional[str] = None


class TelegramUpdate(TelegramModel):
    update_id: int
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None

    @property
    def chat_id(self) -> Optional[int]:
        if self.message is not None:
            return self.message.chat.id
        if self.callback_query is not None and self.callback_query.message is not None:
            return self.callback_query.message.chat.id
        return None

    @property
    def message_id(self) -> Optional[int]:
        if self.message is not None:
            return self.message.message_id
        if self.callback_query is not None and self.callback_query.message is not None:
            return self.callback_query.message.message_id
        return None


class WebAppInfo(TelegramModel):
    url: str


class KeyboardButton(TelegramModel):
    text: str
    web_app: Optional[WebAppInfo] = None


class ReplyKeyboardMarkup(TelegramModel):
    keyboard: List[List[KeyboardButton]]
    resize_keyboard: bool = True
    one_time_keyboard: bool = False


class InlineKeyboardButton(TelegramModel):
    text: str
    callback_data: Optional[str] = None
    web_app: Optional[WebAppInfo] = None


class InlineKeyboardMarkup(TelegramModel):
    inline_keyboard: List[List[InlineKeyboardButton]]


ReplyMarkup = Union[ReplyKeyboardMarkup, InlineKeyboardMarkup]


class SendMessagePayload(TelegramModel):
    chat_id: int
    text: str
    reply_markup: Optional[dict[str, Any]] = None

    @classmethod
    def build(cls, chat_id: int, text: str, reply_markup: Optional[ReplyMarkup] = None) -> "SendMessagePayload":
        markup = reply_markup.model_dump(exclude_none=True) if reply_markup is not None else None
        return cls(chat_id=chat_id, text=text, reply_markup=markup)
