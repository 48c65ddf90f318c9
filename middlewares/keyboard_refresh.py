"""
Middleware для обновления клавиатуры главного меню после перезапуска бота.

Пункты меню сравниваются с текстом кнопок, поэтому старая клавиатура
после смены названий перестаёт работать. При первом сообщении пользователя
после рестарта ему отправляется актуальное меню.
"""
from typing import Callable, Dict, Any, Awaitable, Set

from aiogram import BaseMiddleware
from aiogram.types import Message
from aiogram.fsm.context import FSMContext

from config import settings
from keyboards.keyboards import get_main_menu_keyboard


# user_id, которые уже получили меню в этом процессе
_refreshed_users: Set[int] = set()


class KeyboardRefreshMiddleware(BaseMiddleware):
    """
    Отправляет актуальное меню при первом сообщении пользователя,
    если он не находится в середине бронирования.
    """

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any]
    ) -> Any:
        if not isinstance(event, Message) or event.from_user is None:
            return await handler(event, data)

        user_id = event.from_user.id
        if user_id in _refreshed_users:
            return await handler(event, data)

        _refreshed_users.add(user_id)

        # в середине мастера бронирования или поиска меню не трогаем
        state: FSMContext = data.get("state")
        if state:
            current_state = await state.get_state()
            if current_state is not None:
                return await handler(event, data)

        # /start сам отправляет меню
        if event.text and event.text.startswith('/start'):
            return await handler(event, data)

        await event.answer(
            "Выберите действие:",
            reply_markup=get_main_menu_keyboard(settings.is_admin(user_id))
        )

        return await handler(event, data)
