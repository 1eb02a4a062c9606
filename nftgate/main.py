"""Entry point for nftgate.

Команды только читают состояние цепи и ничего не меняют снаружи, поэтому
``scan`` безопасно гонять по всей базе кошельков как симуляцию.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Sequence

from loguru import logger

from config.settings import get_settings
from .context import get_services, shutdown_services
from .errors import NftGateError
from .logging_config import setup_logging
from .services.core.wallet_verification import format_amount, generate_amount


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nftgate", description="Проверка владения NFT через RPC")
    sub = parser.add_subparsers(dest="command", required=True)

    count = sub.add_parser("count", help="Количество токенов кошелька в коллекции")
    count.add_argument("wallet")
    count.add_argument("contract")
    count.add_argument("--token-id", type=int, default=0)
    count.add_argument("--bypass-cache", action="store_true")

    pass_cmd = sub.add_parser("pass", help="Статус пасса кошелька")
    pass_cmd.add_argument("wallet")
    pass_cmd.add_argument("--no-deep-scan", action="store_true")
    pass_cmd.add_argument("--force-refresh", action="store_true")
    pass_cmd.add_argument("--prior", choices=["yes", "no"], default=None)

    scan = sub.add_parser("scan", help="Массовая проверка кошельков из файла (без побочных эффектов)")
    scan.add_argument("file", type=Path)
    scan.add_argument("--no-pass", action="store_true")
    scan.add_argument("--no-deep-scan", action="store_true")

    verify = sub.add_parser("verify", help="Найти перевод-подтверждение от кошелька")
    verify.add_argument("sender")
    verify.add_argument("amount_wei", type=int)

    sub.add_parser("amount", help="Сгенерировать сумму для подтверждения кошелька")
    return parser


def load_wallets(path: Path) -> list[str]:
    with path.open("r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]


async def run(args: argparse.Namespace) -> int:
    if args.command == "amount":
        amount = generate_amount()
        print(json.dumps({"amount_wei": amount, "amount": format_amount(amount)}))
        return 0

    services = await get_services()
    try:
        if args.command == "count":
            result = await services.gate.check_collection(
                args.wallet,
                args.contract,
                token_id=args.token_id,
                bypass_cache=args.bypass_cache,
            )
            print(
                json.dumps(
                    {
                        "wallet": result.wallet,
                        "contract": result.contract,
                        "count": result.count,
                        "success": result.success,
                        "standard": result.standard.value,
                    }
                )
            )
            return 0 if result.success else 2
        if args.command == "pass":
            prior = None if args.prior is None else args.prior == "yes"
            status = await services.gate.get_pass_status(
                args.wallet,
                prior=prior,
                force_refresh=args.force_refresh,
                allow_deep_scan=not args.no_deep_scan,
            )
            print(json.dumps(status.as_dict()))
            return 0 if status.verdict.is_definitive else 2
        if args.command == "scan":
            report = await services.gate.check_wallets(
                load_wallets(args.file),
                include_pass=not args.no_pass,
                allow_deep_scan=not args.no_deep_scan,
            )
            print(
                f"HAS_PASS={report.has_pass}, NO_PASS={report.no_pass}, "
                f"UNKNOWN={report.unknown_pass}, ERRORS={report.failed + report.invalid}"
            )
            return 0
        if args.command == "verify":
            result = await services.verifier.verify(args.sender, args.amount_wei)
            print(
                json.dumps(
                    {
                        "matched": result.matched,
                        "tx_hash": result.tx_hash,
                        "block": result.block_number,
                        "blocks_scanned": result.blocks_scanned,
                        "blocks_failed": result.blocks_failed,
                    }
                )
            )
            return 0 if result.matched else 1
    finally:
        await shutdown_services()
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.logging.level, json=settings.logging.json_format)
    try:
        return asyncio.run(run(args))
    except NftGateError as exc:
        logger.error("{error}", error=exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
