#!/usr/bin/env python3
"""CLI Entrypoint - コマンドラインから実行

使い方:
    python -m parish_accounts.entrypoints.cli resolve --diocese tagbilaran --municipality Loay --name "St. Joseph"
    python -m parish_accounts.entrypoints.cli check-email --email secretary@parish.ph
    python -m parish_accounts.entrypoints.cli create --diocese tagbilaran --municipality Loay \\
        --name "St. Joseph" --email secretary@parish.ph

終了コード:
    0: 衝突なし / 利用可能 / 作成成功
    1: 衝突あり / 使用中 / エラー

環境変数:
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR) デフォルト: INFO
    その他は parish_accounts.config.AppConfig を参照
"""

import argparse
import logging
import sys

from parish_accounts.domain.errors import ParishAccountsError
from parish_accounts.domain.models import Conflict, CreatedBy
from parish_accounts.entrypoints.factory import ParishAccountServices, create_services
from parish_accounts.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parish-accounts",
        description="Parish secretary account tools",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Check a parish for an existing active account")
    resolve.add_argument("--diocese", required=True)
    resolve.add_argument("--municipality", required=True)
    resolve.add_argument("--name", required=True)

    check_email = sub.add_parser("check-email", help="Check whether an email is available")
    check_email.add_argument("--email", required=True)

    create = sub.add_parser("create", help="Create a parish secretary account")
    create.add_argument("--diocese", required=True)
    create.add_argument("--municipality", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--created-by", default="cli", help="Operator uid recorded on the account")

    return parser


def _run_resolve(services: ParishAccountServices, args: argparse.Namespace) -> int:
    result = services.resolver.resolve(args.diocese, args.municipality, args.name)
    if isinstance(result, Conflict):
        logger.info(
            "Conflict: uid=%s, email=%s, municipality=%s, matched_by=%s",
            result.existing.uid,
            result.existing.email,
            result.stored_municipality,
            result.matched_by.value,
        )
        return 1
    for similar in result.similar:
        logger.info(
            "Similar parish: %s, %s (%s)", similar.name, similar.municipality, similar.email
        )
    if result.degraded:
        logger.warning("Lookup failed, result is not reliable")
    logger.info("No conflict")
    return 0


def _run_check_email(services: ParishAccountServices, args: argparse.Namespace) -> int:
    if services.email_checker.is_available(args.email):
        logger.info("Email available: %s", args.email)
        return 0
    logger.info("Email already in use: %s", args.email)
    return 1


def _run_create(services: ParishAccountServices, args: argparse.Namespace) -> int:
    result = services.coordinator.create_account(
        args.diocese,
        args.municipality,
        args.name,
        args.email,
        created_by=CreatedBy(uid=args.created_by),
    )
    logger.info(
        "Account created: uid=%s, parish_id=%s, credential_setup_sent=%s",
        result.record.uid,
        result.record.parish_identifier,
        result.credential_setup_sent,
    )
    return 0


_COMMANDS = {
    "resolve": _run_resolve,
    "check-email": _run_check_email,
    "create": _run_create,
}


def main(argv: list[str] | None = None, services: ParishAccountServices | None = None) -> int:
    """メインエントリーポイント"""
    setup_logging()
    args = build_parser().parse_args(argv)

    try:
        if services is None:
            services = create_services()
        return _COMMANDS[args.command](services, args)

    except ParishAccountsError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
