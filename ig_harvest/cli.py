from __future__ import annotations

import argparse
import json
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Sequence

from .config import load_config, resolve_oauth_app_id, resolve_oauth_secrets
from .errors import (
    ConfigError,
    HarvestError,
    MalformedInputError,
    PostNotFoundError,
    UpstreamError,
)
from .models import AuthCredentials, HarvestRequest
from .oauth import build_login_url, complete_login
from .pipeline import harvest_post
from .run_log import RunLogger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ig_harvest")

    subparsers = parser.add_subparsers(dest="command", required=True)

    comments = subparsers.add_parser(
        "comments",
        help="Collect every comment (and reply) of one Instagram post.",
    )
    comments.add_argument("--url", required=True, help="Public post URL.")
    comments.add_argument("--config", help="Path to YAML config file (defaults apply if omitted).")
    comments.add_argument("--account-id", help="Instagram Business account id (authenticated path).")
    comments.add_argument("--access-token", help="Graph API access token (authenticated path).")
    comments.add_argument(
        "--mock",
        action="store_true",
        help="Return a fixed result without any network calls.",
    )
    comments.add_argument("--out", help="Write the JSON result to this file instead of stdout.")
    comments.add_argument("--log", help="Append JSONL log events to this file.")
    comments.set_defaults(_handler=_cmd_comments)

    login = subparsers.add_parser("login-url", help="Print the Facebook OAuth login URL.")
    login.add_argument("--config", help="Path to YAML config file.")
    login.add_argument("--state", help="Opaque CSRF state passed through the OAuth flow.")
    login.set_defaults(_handler=_cmd_login_url)

    exchange = subparsers.add_parser(
        "exchange-code",
        help="Exchange an OAuth code for an Instagram session (prints JSON).",
    )
    exchange.add_argument("--config", help="Path to YAML config file.")
    exchange.add_argument("--code", required=True, help="Authorization code from the redirect.")
    exchange.add_argument("--log", help="Append JSONL log events to this file.")
    exchange.set_defaults(_handler=_cmd_exchange_code)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _emit_json(payload: Any, out: str | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out:
        path = Path(out)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def _auth_from_args(args: argparse.Namespace) -> AuthCredentials | None:
    account_id = (getattr(args, "account_id", None) or "").strip()
    token = (getattr(args, "access_token", None) or "").strip()
    if not account_id and not token:
        return None
    if not account_id or not token:
        raise ConfigError("--account-id and --access-token must be given together")
    return AuthCredentials(account_id=account_id, access_token=token)


def _cmd_comments(args: argparse.Namespace) -> int:
    with ExitStack() as stack:
        log = stack.enter_context(RunLogger.open(args.log)) if args.log else None

        cfg = load_config(args.config)
        request = HarvestRequest(
            post_url=args.url,
            auth=_auth_from_args(args),
            mock=bool(args.mock),
        )
        result = harvest_post(request, cfg, logger=log)

    _emit_json(result.to_dict(), args.out)
    return 0


def _cmd_login_url(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    app_id = resolve_oauth_app_id(cfg)
    print(build_login_url(cfg.oauth, app_id, state=args.state))
    return 0


def _cmd_exchange_code(args: argparse.Namespace) -> int:
    with ExitStack() as stack:
        log = stack.enter_context(RunLogger.open(args.log)) if args.log else None

        cfg = load_config(args.config)
        secrets = resolve_oauth_secrets(cfg)
        session = complete_login(args.code, config=cfg, secrets=secrets, logger=log)

    _emit_json(session.to_dict(), None)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except (ConfigError, MalformedInputError) as e:
        _eprint(str(e))
        return 2
    except PostNotFoundError as e:
        _eprint(str(e))
        return 4
    except UpstreamError as e:
        _eprint(str(e))
        return 3
    except HarvestError as e:
        _eprint(str(e))
        return 1
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
