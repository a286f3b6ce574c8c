"""Тексты карточек и ответов ботов (uz / ru)."""
from __future__ import annotations

from food_service.db.models import OrderStatus

DEFAULT_LANGUAGE = "uz"

_TEXTS: dict[str, dict[str, str]] = {
    "uz": {
        "order_header": "🧾 Buyurtma #{order_id}",
        "items_total": "🛒 Mahsulotlar: {amount} so'm",
        "delivery_fee": "🚚 Yetkazib berish: {amount} so'm",
        "grand_total": "💵 Jami: {amount} so'm",
        "status_line": "Holat: {label}",
        "delivery_type_pickup": "🏃 Olib ketish",
        "delivery_type_delivery": "🚚 Yetkazib berish",
        "delivery_type_unset": "❔ Yetkazish turi tanlanmagan",
        "driver_accepted": "✅ Haydovchi buyurtmani qabul qildi",
        "driver_heading": "Haydovchi",
        "driver_phone": "📞 {phone}",
        "driver_car": "🚗 {car}",
        "waiting_driver": "⏳ Haydovchi kutilmoqda...",
        "btn_start_preparing": "👨‍🍳 Tayyorlashni boshlash",
        "btn_reject": "❌ Rad etish",
        "btn_mark_ready": "✅ Tayyor",
        "btn_send_delivery": "🚚 Yetkazib berishga",
        "btn_customer_pickup": "🏃 Mijoz olib ketadi",
        "btn_mark_completed": "🏁 Yakunlash",
        "btn_picked_up": "📦 Olib ketdim",
        "btn_start_delivering": "🚗 Yo'lga chiqdim",
        "btn_delivered": "🏁 Yetkazildi",
        "btn_track_driver": "📍 Haydovchini kuzatish",
        "btn_accept_order": "✅ Qabul qilish #{order_id}",
        "offer_heading": "📦 Yangi buyurtma yaqin atrofda!",
        "offer_distance": "Masofa: {distance:.2f} km",
        "offer_items": "Buyurtma: {amount} so'm",
        "offer_delivery": "Yetkazib berish: {amount} so'm",
        "offer_fee_base": "  Boshlang'ich: {amount} so'm",
        "offer_fee_distance": "  {km:.1f} km × {rate} = {amount} so'm",
        "offer_total": "Jami: {amount} so'm",
        "offer_question": "Qabul qilasizmi?",
        "job_line": "#{order_id} · {distance:.2f} km · {grand_total} so'm",
        "jobs_empty": "Yaqin atrofda buyurtmalar yo'q.",
        "no_active_order": "Faol buyurtma yo'q.",
        "status_updated": "✅ Holat yangilandi.",
        "claim_ok": "✅ Buyurtma #{order_id} sizniki!",
        "delivery_type_saved": "✅ Yetkazish turi saqlandi.",
        "went_online": "🟢 Siz onlaynsiz. Joylashuvingizni yuboring.",
        "went_offline": "⚪️ Siz oflaynsiz.",
        "location_saved": "📍 Joylashuv saqlandi.",
        "unknown_action": "Tugma eskirgan.",
        "menu_online": "🟢 Onlayn",
        "menu_offline": "⚪️ Oflayn",
        "menu_jobs": "📍 Yaqin buyurtmalar",
        "menu_active": "📦 Faol buyurtma",
        "menu_share_location": "📡 Joylashuvni yuborish",
        "driver_welcome": "Salom, {name}! Siz haydovchi sifatida ro'yxatdan o'tdingiz.",
        "stats_text": "📊 {day}\nBuyurtmalar: {orders_count}\nMahsulotlar: {items_revenue} so'm\nYetkazish: {delivery_revenue} so'm\nJami: {grand_revenue} so'm\nO'zgartirilgan narxlar: {overrides_count}",
        "override_usage": "Foydalanish: /override <buyurtma_id> <narx> [izoh]",
        "override_done": "✅ Buyurtma #{order_id}: yetkazish narxi {fee} so'm.",
        "not_admin": "Siz filial administratori emassiz.",
        "err_not-found": "Buyurtma topilmadi.",
        "err_stale-transition": "Buyurtma holati o'zgargan. Kartani yangilang.",
        "err_illegal-transition": "Bu amal hozir mumkin emas.",
        "err_would-usurp-driver": "Buyurtma haydovchida. Uni haydovchi yakunlaydi.",
        "err_driver-will-complete": "Yetkazib berish buyurtmasini haydovchi yakunlaydi.",
        "err_already-claimed": "Buyurtmani boshqa haydovchi oldi.",
        "err_stale-presence": "Joylashuvingiz eskirgan. Iltimos, joylashuvni yuboring.",
        "err_transport-transient": "Xabar yuborilmadi, qayta urinib ko'ring.",
        "err_deadline-exceeded": "Vaqt tugadi, qayta urinib ko'ring.",
        "err_storage-unavailable": "Server band, qayta urinib ko'ring.",
        "err_constraint-violation": "Ma'lumotlar noto'g'ri.",
    },
    "ru": {
        "order_header": "🧾 Заказ #{order_id}",
        "items_total": "🛒 Товары: {amount} сум",
        "delivery_fee": "🚚 Доставка: {amount} сум",
        "grand_total": "💵 Итого: {amount} сум",
        "status_line": "Статус: {label}",
        "delivery_type_pickup": "🏃 Самовывоз",
        "delivery_type_delivery": "🚚 Доставка",
        "delivery_type_unset": "❔ Способ получения не выбран",
        "driver_accepted": "✅ Водитель принял заказ",
        "driver_heading": "Водитель",
        "driver_phone": "📞 {phone}",
        "driver_car": "🚗 {car}",
        "waiting_driver": "⏳ Ожидаем водителя...",
        "btn_start_preparing": "👨‍🍳 Начать готовить",
        "btn_reject": "❌ Отклонить",
        "btn_mark_ready": "✅ Готов",
        "btn_send_delivery": "🚚 На доставку",
        "btn_customer_pickup": "🏃 Самовывоз",
        "btn_mark_completed": "🏁 Завершить",
        "btn_picked_up": "📦 Забрал заказ",
        "btn_start_delivering": "🚗 Выехал",
        "btn_delivered": "🏁 Доставлен",
        "btn_track_driver": "📍 Где водитель",
        "btn_accept_order": "✅ Принять #{order_id}",
        "offer_heading": "📦 Новый заказ рядом!",
        "offer_distance": "Расстояние: {distance:.2f} км",
        "offer_items": "Заказ: {amount} сум",
        "offer_delivery": "Доставка: {amount} сум",
        "offer_fee_base": "  Посадка: {amount} сум",
        "offer_fee_distance": "  {km:.1f} км × {rate} = {amount} сум",
        "offer_total": "Итого: {amount} сум",
        "offer_question": "Принимаете?",
        "job_line": "#{order_id} · {distance:.2f} км · {grand_total} сум",
        "jobs_empty": "Рядом нет заказов.",
        "no_active_order": "Нет активного заказа.",
        "status_updated": "✅ Статус обновлён.",
        "claim_ok": "✅ Заказ #{order_id} ваш!",
        "delivery_type_saved": "✅ Способ получения сохранён.",
        "went_online": "🟢 Вы на линии. Отправьте геолокацию.",
        "went_offline": "⚪️ Вы не на линии.",
        "location_saved": "📍 Геолокация сохранена.",
        "unknown_action": "Кнопка устарела.",
        "menu_online": "🟢 На линии",
        "menu_offline": "⚪️ Не на линии",
        "menu_jobs": "📍 Заказы рядом",
        "menu_active": "📦 Активный заказ",
        "menu_share_location": "📡 Отправить геолокацию",
        "driver_welcome": "Здравствуйте, {name}! Вы зарегистрированы как водитель.",
        "stats_text": "📊 {day}\nЗаказов: {orders_count}\nТовары: {items_revenue} сум\nДоставка: {delivery_revenue} сум\nИтого: {grand_revenue} сум\nРучных тарифов: {overrides_count}",
        "override_usage": "Использование: /override <id_заказа> <стоимость> [комментарий]",
        "override_done": "✅ Заказ #{order_id}: доставка {fee} сум.",
        "not_admin": "Вы не администратор филиала.",
        "err_not-found": "Заказ не найден.",
        "err_stale-transition": "Статус заказа изменился. Обновите карточку.",
        "err_illegal-transition": "Это действие сейчас недоступно.",
        "err_would-usurp-driver": "Заказ у водителя. Его завершит водитель.",
        "err_driver-will-complete": "Заказ с доставкой завершает водитель.",
        "err_already-claimed": "Заказ уже забрал другой водитель.",
        "err_stale-presence": "Геолокация устарела. Отправьте её заново.",
        "err_transport-transient": "Сообщение не отправлено, попробуйте ещё раз.",
        "err_deadline-exceeded": "Время ожидания истекло, попробуйте ещё раз.",
        "err_storage-unavailable": "Сервер занят, попробуйте ещё раз.",
        "err_constraint-violation": "Некорректные данные.",
    },
}

_STATUS_LABELS: dict[str, dict[OrderStatus, str]] = {
    "uz": {
        OrderStatus.NEW: "🆕 Yangi",
        OrderStatus.PREPARING: "👨‍🍳 Tayyorlanmoqda",
        OrderStatus.READY: "✅ Tayyor",
        OrderStatus.REJECTED: "❌ Rad etildi",
        OrderStatus.ASSIGNED: "🚗 Haydovchi topildi",
        OrderStatus.PICKED_UP: "📦 Olib ketildi",
        OrderStatus.DELIVERING: "🛣 Yo'lda",
        OrderStatus.COMPLETED: "🏁 Yakunlandi",
    },
    "ru": {
        OrderStatus.NEW: "🆕 Новый",
        OrderStatus.PREPARING: "👨‍🍳 Готовится",
        OrderStatus.READY: "✅ Готов",
        OrderStatus.REJECTED: "❌ Отклонён",
        OrderStatus.ASSIGNED: "🚗 Водитель найден",
        OrderStatus.PICKED_UP: "📦 Забран",
        OrderStatus.DELIVERING: "🛣 В пути",
        OrderStatus.COMPLETED: "🏁 Завершён",
    },
}


def normalize_language(language: str | None) -> str:
    if language and language in _TEXTS:
        return language
    return DEFAULT_LANGUAGE


def t(language: str | None, key: str, **kwargs) -> str:
    table = _TEXTS[normalize_language(language)]
    template = table.get(key) or _TEXTS[DEFAULT_LANGUAGE].get(key, key)
    return template.format(**kwargs) if kwargs else template


def status_label(language: str | None, status: OrderStatus) -> str:
    return _STATUS_LABELS[normalize_language(language)].get(status, status.value)


def error_text(language: str | None, code: str) -> str:
    return t(language, f"err_{code}")
