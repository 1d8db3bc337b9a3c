"""
Statistics Portal Client - Source Code Package
==============================================
Клиент REST API статистического портала (новости, документы, админка, статистика).

Структура:
- core/     - Конфигурация, константы, логирование
- api/      - HTTP клиент, кэш ответов, хранилища
- auth/     - Сессия пользователя, токены, автообновление
- models/   - Pydantic схемы ответов API
- services/ - Сервисы предметной области (auth, news, documents, admin, stats)
- state/    - Состояние запросов: загрузка, пагинация, дебаунс
- utils/    - Вспомогательные утилиты
"""

__version__ = "1.0.0"
