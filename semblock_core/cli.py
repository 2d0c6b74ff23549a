"""
semblock CLI

Usage:
    semblock validate "div.post:contains-meaning-prompt('is this an ad?')"
    semblock parse "example.com#?#p:contains-meaning-embedding('giveaway')"
    semblock rules add "article:contains-meaning-prompt('clickbait')"
    semblock rules list
    semblock settings set prompt_threshold 0.8
    semblock analyze elements.json
    semblock cache clear
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .background import BackgroundManager
from .config import config
from .error_handler import format_error_for_logging
from .exceptions import RuleParseError, SemblockError
from .log_config import setup_logging
from .rules import parse_rule
from .storage import JsonFileStorage
from .streaming import ANALYZE_ELEMENTS, QueueChannel


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="semblock",
        description="Evaluate semantic content rules with LLM backends"
    )
    parser.add_argument("--storage", default=str(config.storage_file),
                        help="Storage file (default: %(default)s)")
    parser.add_argument("--log-level", default=config.log_level,
                        help="Logging level (default: %(default)s)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    validate_parser = subparsers.add_parser("validate", help="Check that a rule parses")
    validate_parser.add_argument("rule", help="Rule string")

    parse_parser = subparsers.add_parser("parse", help="Parse a rule and print it as JSON")
    parse_parser.add_argument("rule", help="Rule string")

    rules_parser = subparsers.add_parser("rules", help="Manage stored rules")
    rules_sub = rules_parser.add_subparsers(dest="rules_command")
    rules_sub.add_parser("list", help="List stored rules")
    add_parser = rules_sub.add_parser("add", help="Add a rule")
    add_parser.add_argument("rule", help="Rule string")
    remove_parser = rules_sub.add_parser("remove", help="Remove a rule by id")
    remove_parser.add_argument("rule_id")
    toggle_parser = rules_sub.add_parser("toggle", help="Enable or disable a rule")
    toggle_parser.add_argument("rule_id")
    toggle_parser.add_argument("state", choices=["on", "off"])
    rules_sub.add_parser("clear", help="Remove all rules")

    settings_parser = subparsers.add_parser("settings", help="Show or change settings")
    settings_sub = settings_parser.add_subparsers(dest="settings_command")
    settings_sub.add_parser("show", help="Print current settings")
    set_parser = settings_sub.add_parser("set", help="Set one setting")
    set_parser.add_argument("key")
    set_parser.add_argument("value", help="JSON value, or a plain string")

    analyze_parser = subparsers.add_parser("analyze", help="Stream analysis of elements from a JSON file")
    analyze_parser.add_argument("elements", help="JSON file: list of {id, text, selector}")

    cache_parser = subparsers.add_parser("cache", help="Cache maintenance")
    cache_sub = cache_parser.add_subparsers(dest="cache_command")
    cache_sub.add_parser("clear", help="Clear the analysis cache")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _parse_value(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _mask_keys(settings: dict) -> dict:
    masked = dict(settings)
    for key in ("openai_api_key", "openrouter_api_key"):
        if masked.get(key):
            masked[key] = masked[key][:6] + "..."
    return masked


async def run_command(args) -> int:
    if args.command == "validate":
        try:
            parse_rule(args.rule)
        except RuleParseError as e:
            print(f"❌ {e}")
            return 1
        print("✅ Rule is valid")
        return 0

    if args.command == "parse":
        try:
            _print_json(parse_rule(args.rule).to_dict())
        except RuleParseError as e:
            print(f"❌ {e}")
            return 1
        return 0

    manager = BackgroundManager.create(JsonFileStorage(args.storage))
    await manager.init()
    try:
        return await _run_service_command(manager, args)
    finally:
        await manager.shutdown()


async def _run_service_command(manager: BackgroundManager, args) -> int:
    if args.command == "rules":
        if args.rules_command == "add":
            response = await manager.handle({"action": "addRule", "rule_string": args.rule})
        elif args.rules_command == "remove":
            response = await manager.handle({"action": "removeRule", "rule_id": args.rule_id})
        elif args.rules_command == "toggle":
            response = await manager.handle(
                {"action": "toggleRule", "rule_id": args.rule_id, "enabled": args.state == "on"}
            )
        elif args.rules_command == "clear":
            response = await manager.handle({"action": "clearRules"})
        else:
            response = await manager.handle({"action": "getRules"})
        _print_json(response)
        return 0 if response.get("success") else 1

    if args.command == "settings":
        if args.settings_command == "set":
            response = await manager.handle(
                {"action": "updateSettings", "updates": {args.key: _parse_value(args.value)}}
            )
        else:
            response = await manager.handle({"action": "getSettings"})
            if response.get("success"):
                response["settings"] = _mask_keys(response["settings"])
        _print_json(response)
        return 0 if response.get("success") else 1

    if args.command == "cache":
        response = await manager.handle({"action": "clearCache"})
        _print_json(response)
        return 0 if response.get("success") else 1

    if args.command == "analyze":
        data = json.loads(Path(args.elements).read_text(encoding="utf-8"))
        elements = data.get("elements", []) if isinstance(data, dict) else data
        channel = QueueChannel()
        await manager.handle_streaming_message({"action": ANALYZE_ELEMENTS, "elements": elements}, channel)
        failed = False
        for message in channel.drain():
            failed = failed or message.get("type") == "error"
            print(json.dumps(message, ensure_ascii=False))
        return 1 if failed else 0

    return 2


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level)
    try:
        sys.exit(asyncio.run(run_command(args)))
    except SemblockError as e:
        print(format_error_for_logging(e, args.command), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
