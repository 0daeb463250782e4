#!/usr/bin/env python3
# create_db.py
"""
Создаёт базу данных rideshare, если её ещё нет.
Схема применяется при старте приложения (migrations/init.sql).
"""

from __future__ import annotations

import asyncio

import asyncpg

from rideshare.common.constants import TypeMsg
from rideshare.common.logger import log_error, log_info, setup_logging
from rideshare.config import settings


async def create_db() -> bool:
    """
    Создаёт базу DB_NAME через служебную базу postgres.

    Returns:
        True если база создана или уже существует
    """
    db_name = settings.database.DB_NAME

    try:
        # Подключаемся к служебной базе, чтобы создать новую
        sys_conn = await asyncpg.connect(
            user=settings.database.DB_USER,
            password=settings.database.DB_PASSWORD,
            host=settings.database.DB_HOST,
            port=settings.database.DB_PORT,
            database="postgres",
        )
    except (OSError, asyncpg.PostgresError) as e:
        await log_error(f"Не удалось подключиться к PostgreSQL: {e}")
        return False

    try:
        exists = await sys_conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if exists:
            await log_info(f"База данных {db_name} уже существует", type_msg=TypeMsg.INFO)
            return True

        # Имя базы нельзя передать параметром, экранируем как идентификатор
        quoted = '"' + db_name.replace('"', '""') + '"'
        await sys_conn.execute(f"CREATE DATABASE {quoted}")
        await log_info(f"База данных {db_name} создана", type_msg=TypeMsg.INFO)
        return True
    finally:
        await sys_conn.close()


if __name__ == "__main__":
    setup_logging()
    ok = asyncio.run(create_db())
    raise SystemExit(0 if ok else 1)
