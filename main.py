#!/usr/bin/env python3
"""
Запуск бота модерации.

    python main.py              # окружение из ENVIRONMENT (по умолчанию development)
    python main.py --env prod   # .env.prod
"""

import argparse
import asyncio
import os
import sys

ENV_ALIASES = {"dev": "development", "test": "testing", "prod": "production"}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="modguard: бот модерации Telegram")
    parser.add_argument("--env", choices=sorted(ENV_ALIASES), help="какой .env файл загрузить")
    return parser.parse_args(argv)


def run(argv=None) -> int:
    args = parse_args(argv)
    if args.env:
        # до импорта modguard.config: он читает ENVIRONMENT при загрузке
        os.environ["ENVIRONMENT"] = ENV_ALIASES[args.env]

    from modguard.bot import main

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n🛑 Бот остановлен пользователем")
    except ValueError as e:
        # validate_required(): не хватает обязательных переменных окружения
        print(f"❌ Ошибка конфигурации: {e}")
        return 2
    except Exception as e:
        print(f"❌ Ошибка запуска бота: {e}")
        import traceback
        traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
