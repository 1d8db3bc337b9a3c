"""
Utils Package
=============
Вспомогательные функции: ключи кэша, валидация, файлы, статистика запросов.
"""
