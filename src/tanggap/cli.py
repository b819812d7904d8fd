import argparse
import asyncio
import logging
import sys

from tanggap.config import settings
from tanggap.sentry import flush as sentry_flush
from tanggap.sentry import init_sentry


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def serve(host: str | None = None, port: int | None = None) -> None:
    import uvicorn

    uvicorn.run(
        "tanggap.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def init_database() -> None:
    from tanggap.db.database import init_db
    from tanggap.services.media import get_media_store

    init_db()
    get_media_store().ensure_directories()
    print("Database schema and media directories ready")


async def check_config() -> bool:
    from tanggap.db.database import check_connection

    print("Tanggap Darurat Configuration Check\n")

    checks = [
        ("Database", check_connection()),
        ("WhatsApp Cloud API", settings.has_whatsapp),
        ("WhatsApp Verify Token", bool(settings.whatsapp_verify_token)),
        ("WhatsApp Web Gateway", settings.has_whatsapp_web),
        ("Telegram Bot + Admin Chat", settings.has_telegram),
        ("Ollama", settings.has_ollama),
        ("Admin Password", bool(settings.admin_password)),
        ("Sentry DSN", settings.has_sentry),
        ("Auto-assign Critical Reports", settings.has_auto_assign),
    ]
    if settings.whatsapp_mode == "web":
        required = {"Database", "WhatsApp Web Gateway"}
    else:
        required = {"Database", "WhatsApp Cloud API", "WhatsApp Verify Token"}

    all_required_ok = True
    for name, configured in checks:
        status = "OK" if configured else "MISSING"
        symbol = "+" if configured else "-"
        print(f"  [{symbol}] {name}: {status}")
        if name in required and not configured:
            all_required_ok = False

    if settings.jwt_secret == "change-me":
        print("\n  Warning: JWT_SECRET is the default value; set a real secret")

    print(f"\n  WhatsApp mode: {settings.whatsapp_mode}")
    print(f"  Auto-verify trust level: {settings.auto_verify_trust_level}")
    print(f"  Timezone: {settings.timezone}")
    print()
    if all_required_ok:
        print("Required configuration present. Ready to run.")
    else:
        print("Missing required configuration. See .env.example for setup.")
    return all_required_ok


def setup_admin(phone_number: str, name: str) -> None:
    from tanggap.db.database import SessionLocal, init_db
    from tanggap.db.models import UserRole
    from tanggap.services.users import get_or_create_user

    init_db()
    db = SessionLocal()
    try:
        user, created = get_or_create_user(db, phone_number, name, role=UserRole.ADMIN.value)
        user.role = UserRole.ADMIN.value
        user.name = name
        user.trust_level = max(user.trust_level or 0, 5)
        user.is_active = True
        db.commit()
        action = "Created" if created else "Promoted"
        print(f"{action} admin {user.name} ({user.phone_number})")
    finally:
        db.close()


def cleanup() -> None:
    """Delete expired chat states."""
    from tanggap.db.database import SessionLocal
    from tanggap.services.chat_state import ChatStateStore

    db = SessionLocal()
    try:
        removed = ChatStateStore(db).purge_expired()
    finally:
        db.close()
    print(f"Removed {removed} expired chat states")


async def run_bot() -> None:
    from tanggap.telegram.bot import OperatorBot

    if not settings.telegram_bot_token:
        print("Error: TELEGRAM_BOT_TOKEN not configured")
        print("Set it in .env file or as environment variable")
        sys.exit(1)

    bot = OperatorBot()
    await bot.start()


def main() -> None:
    parser = argparse.ArgumentParser(description="Tanggap Darurat disaster report intake")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API and webhooks")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    subparsers.add_parser("init-db", help="Create database tables and media directories")
    subparsers.add_parser("check", help="Check configuration")
    admin_parser = subparsers.add_parser("setup-admin", help="Create or promote an admin user")
    admin_parser.add_argument("--phone", required=True, help="Admin phone number")
    admin_parser.add_argument("--name", required=True, help="Admin display name")
    subparsers.add_parser("cleanup", help="Delete expired chat states")
    subparsers.add_parser("bot", help="Run the operator Telegram bot")

    args = parser.parse_args()

    setup_logging()

    init_sentry(
        dsn=settings.sentry_dsn if settings.has_sentry else None,
        environment=settings.sentry_environment,
    )

    try:
        if args.command == "serve":
            serve(args.host, args.port)
        elif args.command == "init-db":
            init_database()
        elif args.command == "check":
            if not asyncio.run(check_config()):
                sys.exit(1)
        elif args.command == "setup-admin":
            setup_admin(args.phone, args.name)
        elif args.command == "cleanup":
            cleanup()
        elif args.command == "bot":
            asyncio.run(run_bot())
        else:
            parser.print_help()
    finally:
        sentry_flush(timeout=2.0)


if __name__ == "__main__":
    main()
