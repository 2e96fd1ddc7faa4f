#!/usr/bin/env python3
"""
Apply, roll back or inspect the AgriSmart schema migrations
"""
import os
import sys
from alembic.config import Config
from alembic import command

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from shared.config import get_config
from shared.logging import get_logger

logger = get_logger(__name__)

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini")


def alembic_config() -> Config:
    alembic_cfg = Config(ALEMBIC_INI)
    alembic_cfg.set_main_option("sqlalchemy.url", get_config().database_url)
    return alembic_cfg


def upgrade(revision: str = "head") -> bool:
    logger.info(f"Upgrading database to {revision}")
    try:
        command.upgrade(alembic_config(), revision)
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        return False
    logger.info("Database migrations completed")
    return True


def downgrade(revision: str) -> bool:
    logger.info(f"Downgrading database to {revision}")
    try:
        command.downgrade(alembic_config(), revision)
    except Exception as e:
        logger.error(f"Downgrade failed: {e}")
        return False
    return True


def create_migration(message: str) -> bool:
    try:
        command.revision(alembic_config(), message=message, autogenerate=True)
    except Exception as e:
        logger.error(f"Migration creation failed: {e}")
        return False
    logger.info(f"Migration '{message}' created")
    return True


def main():
    usage = (
        "Usage:\n"
        "  python scripts/run-migrations.py migrate [revision]\n"
        "  python scripts/run-migrations.py downgrade <revision>\n"
        "  python scripts/run-migrations.py current\n"
        "  python scripts/run-migrations.py create 'migration message'"
    )
    if len(sys.argv) < 2:
        print(usage)
        sys.exit(1)

    command_arg = sys.argv[1]
    argument = sys.argv[2] if len(sys.argv) > 2 else None

    if command_arg == "migrate":
        success = upgrade(argument or "head")
    elif command_arg == "downgrade" and argument:
        success = downgrade(argument)
    elif command_arg == "current":
        command.current(alembic_config(), verbose=True)
        success = True
    elif command_arg == "create" and argument:
        success = create_migration(argument)
    else:
        print(usage)
        success = False

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
