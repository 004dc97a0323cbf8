"""
Literal texts and keyboards shown in Telegram (HTML parse mode).
"""

import html
from datetime import datetime, timedelta
from typing import List, Optional, Union

from calbot.calendar.models import Event
from calbot.dialog.graph import DURATION_SHORTCUTS, FULL_DAY_LABEL
from calbot.dialog.prompts import (
    CANCEL_KEYWORD,
    CallbackAction,
    MenuAction,
    Prompt,
    PromptKind,
    encode_callback,
)
from calbot.handlers.types import Button, Keyboard, OutgoingMessage
from calbot.state import EventDraft, Step

MONTHS = [
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
]

TODAY_TITLE = "<b>События на сегодня</b>"
TODAY_NOT_FOUND = "Сегодня событий нет 🎉"
NEXT_TITLE = "<b>Ближайшее событие</b>"
NO_CLOSEST = "Ближайших событий нет"
DATE_INIT = "На какую дату показать события? Выберите или напишите свою"
DATE_NOT_FOUND = "В этот день событий нет"
DATE_CANCELLED = "Хорошо, не будем смотреть"
DATE_NOT_PARSED = "Не получилось распознать дату, попробуйте ещё раз"
CREATE_INIT = "Когда начинается событие? Выберите или напишите свой вариант"
CREATE_CANCELLED = "Создание события отменено"
CREATE_HEADER = "<b>Новое событие</b>\n\n"
CREATED_HEADER = "<b>Событие создано</b>\n\n"
EVENT_CREATED = "Событие создано"
DRAFT_INCOMPLETE = "Заполните начало, окончание и название события"
NOT_AUTH = "Сначала подключите календарь через /start"
NO_ACTIVE_DIALOG = "Не понимаю, что делать с этим сообщением. Посмотрите /help"
NOT_ALLOWED = "Эта кнопка не для вас"
EVENT_NOT_AVAILABLE = "Событие больше недоступно"
ERROR = "Что-то пошло не так, попробуйте позже"
DATE_SERVICE_ERROR = "Сервис распознавания дат недоступен, попробуйте позже"
ALERT_BASE = "Показать календарь"
SHOW_MORE = "Подробнее"
SHOW_LESS = "Скрыть"
CALL_LINK = "Подключиться к звонку"

QUESTIONS = {
    PromptKind.ASK_FROM: CREATE_INIT,
    PromptKind.ASK_TO: "Сколько будет длиться событие? Или напишите новое время начала",
    PromptKind.ASK_TITLE: "Как назовём событие?",
    PromptKind.ASK_DESC: "Напишите описание события",
    PromptKind.ASK_LOCATION: "Где пройдёт событие?",
    PromptKind.ASK_USER: "Напишите почту участника",
}

JUMP_LABELS = {
    Step.FROM.value: "Изменить начало",
    Step.TO.value: "Изменить окончание",
    Step.TITLE.value: "Название",
    Step.DESC.value: "Описание",
    Step.LOCATION.value: "Место",
    Step.USER.value: "Добавить участника",
}

QUICK_STARTS = [
    ["Через полчаса", "Через час", "Через два часа", "Через три часа"],
    ["Сегодня в 9:00", "Сегодня в 12:00", "Сегодня в 15:00", "Сегодня в 18:00"],
    ["Завтра в 9:00", "Завтра в 12:00", "Завтра в 15:00", "Завтра в 18:00"],
    ["Через неделю в 12:00", "Через неделю в 15:00", "Через неделю в 18:00"],
    [CANCEL_KEYWORD],
]

ALERT_COMMANDS = {"today": "/today", "next": "/next", "date": "/date"}

START_NO_AUTH = (
    "Привет! Я показываю события из Google Календаря и помогаю создавать новые.\n\n"
    "Ваш аккаунт пока не подключён к календарю, обратитесь к администратору бота"
)
START_AUTH = "Привет! Календарь подключён, посмотрите /help"
UNKNOWN_COMMAND = "Такой команды нет. Посмотрите /help"

HELP_TEXT = (
    "<b>Что я умею</b>\n\n"
    "/today - события на сегодня\n"
    "/next - ближайшее событие\n"
    "/date - события на выбранную дату\n"
    "/create - создать событие\n"
    "/start - статус подключения календаря\n"
    "/about - о боте"
)
HELP_KEYBOARD = [["/today", "/next"], ["/date", "/create"]]

ABOUT_TEXT = (
    "<b>Календарный бот</b>\n\n"
    "Показывает события календаря прямо в чате и создаёт новые за пару сообщений. "
    "В группах сначала спрашивает, показывать ли ваш календарь всем"
)


def format_day(day: datetime) -> str:
    return f"{day.day} {MONTHS[day.month - 1]}"


def format_span(start: Optional[datetime], end: Optional[datetime], full_day: bool) -> str:
    if start is None:
        return "время не выбрано"
    if full_day:
        return f"{format_day(start)}, весь день"
    if end is None:
        return f"{format_day(start)}, {start:%H:%M}"
    if end.date() == start.date():
        return f"{format_day(start)}, {start:%H:%M} - {end:%H:%M}"
    return f"{format_day(start)} {start:%H:%M} - {format_day(end)} {end:%H:%M}"


def _short(item: Union[Event, EventDraft]) -> str:
    title = html.escape(item.title) if item.title else "<i>Без названия</i>"
    return f"<b>{title}</b>\n{format_span(item.start, item.end, item.full_day)}"


def _full(item: Union[Event, EventDraft]) -> str:
    lines = [_short(item)]
    if item.location.description:
        lines.append(f"📍 {html.escape(item.location.description)}")
    if item.description:
        lines.append(f"\n{html.escape(item.description)}")
    if item.organizer:
        lines.append(f"\nОрганизатор: {html.escape(item.organizer.email)}")
    if item.attendees:
        lines.append("Участники:")
        lines.extend(f"• {html.escape(a.email)}" for a in item.attendees)
    return "\n".join(lines)


def event_short(event: Event, expandable: bool = False) -> OutgoingMessage:
    keyboard = None
    if expandable:
        keyboard = Keyboard(
            inline=[[Button(text=SHOW_MORE, callback_data=encode_callback(CallbackAction.SHOW_FULL, event.uid))]]
        )
    return OutgoingMessage(text=_short(event), keyboard=keyboard)


def event_full(event: Event) -> OutgoingMessage:
    rows: List[List[Button]] = []
    if event.call_link:
        rows.append([Button(text=CALL_LINK, url=event.call_link)])
    rows.append([Button(text=SHOW_LESS, callback_data=encode_callback(CallbackAction.SHOW_SHORT, event.uid))])
    return OutgoingMessage(text=_full(event), keyboard=Keyboard(inline=rows))


def event_created(event: Event) -> OutgoingMessage:
    return OutgoingMessage(text=CREATED_HEADER + _short(event), keyboard=Keyboard(remove=True))


def callback_header(event: Event) -> str:
    return f"{event.title or 'Без названия'}, {format_span(event.start, event.end, event.full_day)}"


def date_title(day: datetime) -> str:
    return f"<b>События на {format_day(day)}</b>"


def notice(message: str, remove_keyboard: bool = True) -> OutgoingMessage:
    return OutgoingMessage(text=message, keyboard=Keyboard(remove=True) if remove_keyboard else None)


def date_picker(now: datetime) -> OutgoingMessage:
    days = [now + timedelta(days=i) for i in range(6)]
    labels = [format_day(d) for d in days]
    labels[0] += ", Сегодня"
    labels[1] += ", Завтра"
    return OutgoingMessage(
        text=DATE_INIT,
        keyboard=Keyboard(reply=[labels[:3], labels[3:], [CANCEL_KEYWORD]]),
    )


def group_alert(command: str) -> OutgoingMessage:
    return OutgoingMessage(
        text=f"{ALERT_BASE} {ALERT_COMMANDS.get(command, command)} для вас?",
        keyboard=Keyboard(
            inline=[[
                Button(text="Да", callback_data=encode_callback(CallbackAction.ALERT_YES, command)),
                Button(text="Нет", callback_data=encode_callback(CallbackAction.ALERT_NO)),
            ]]
        ),
    )


def _menu_button(action: MenuAction, draft: EventDraft) -> Button:
    if action.action == CallbackAction.CREATE:
        label = "Создать"
    elif action.action == CallbackAction.CANCEL:
        label = CANCEL_KEYWORD
    elif action.action == CallbackAction.FULL_DAY:
        label = FULL_DAY_LABEL
    else:
        label = JUMP_LABELS[action.data]
        filled = {
            Step.TITLE.value: draft.title,
            Step.DESC.value: draft.description,
            Step.LOCATION.value: draft.location.description,
        }
        if action.data in filled:
            label = ("Изменить " if filled[action.data] else "Добавить ") + label.lower()
    return Button(text=label, callback_data=encode_callback(action.action, action.data))


def _menu(prompt: Prompt) -> Keyboard:
    buttons = [_menu_button(a, prompt.draft) for a in prompt.actions]
    return Keyboard(inline=[buttons[i:i + 2] for i in range(0, len(buttons), 2)])


def question(kind: PromptKind) -> OutgoingMessage:
    keyboard = Keyboard(remove=True)
    if kind == PromptKind.ASK_TO:
        labels = list(DURATION_SHORTCUTS)
        keyboard = Keyboard(reply=[labels[:3], labels[3:6], labels[6:], [CANCEL_KEYWORD]])
    elif kind == PromptKind.ASK_FROM:
        keyboard = Keyboard(reply=QUICK_STARTS)
    return OutgoingMessage(text=QUESTIONS[kind], keyboard=keyboard)


def prompt_message(prompt: Prompt) -> OutgoingMessage:
    if prompt.kind == PromptKind.DRAFT:
        return OutgoingMessage(text=CREATE_HEADER + _full(prompt.draft), keyboard=_menu(prompt))
    if prompt.kind == PromptKind.CANCELLED:
        return notice(CREATE_CANCELLED)
    if prompt.kind == PromptKind.DATE_NOT_PARSED:
        return notice(DATE_NOT_PARSED, remove_keyboard=False)
    if prompt.kind == PromptKind.RESOLUTION_FAILED:
        return notice(DATE_SERVICE_ERROR, remove_keyboard=False)
    return question(prompt.kind)


def start_greeting(email: Optional[str]) -> OutgoingMessage:
    if email:
        return notice(f"Привет! Подключён календарь {html.escape(email)}, посмотрите /help")
    return notice(START_AUTH)


def help_message() -> OutgoingMessage:
    return OutgoingMessage(text=HELP_TEXT, keyboard=Keyboard(reply=HELP_KEYBOARD))
