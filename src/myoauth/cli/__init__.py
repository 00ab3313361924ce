"""CLI for running and inspecting myoauth."""

import argparse
import asyncio
import sys

import httpx

from myoauth.config import CognitoConfig, Settings, get_settings
from myoauth.auth.cognito import build_authorization_url
from myoauth.auth.crypto import Cryptoblock
from myoauth.auth.flow import STATE_BITS
from myoauth.auth.jwks import KeySetCache
from myoauth.exceptions import ConfigError, TransportError


def load_config(settings: Settings) -> CognitoConfig | None:
    try:
        return CognitoConfig.from_settings(settings)
    except ConfigError as e:
        print("✗ Configuration incomplete. Missing settings:")
        for name in e.missing:
            print(f"    - MYOAUTH_{name.upper()}")
        return None


def authorize_url(settings: Settings) -> bool:
    """Print a fresh authorization URL with its state and code verifier."""
    config = load_config(settings)
    if config is None:
        return False

    cryptoblock = Cryptoblock()
    state = cryptoblock.random(STATE_BITS)
    pkce = cryptoblock.pkce_pair()

    print(build_authorization_url(config, state, pkce.code_challenge))
    print(f"  state: {state}")
    print(f"  code_verifier: {pkce.code_verifier}")
    return True


async def list_keys(settings: Settings) -> bool:
    """Fetch the user pool's JWKS and print its keys."""
    config = load_config(settings)
    if config is None:
        return False

    async with httpx.AsyncClient(timeout=settings.http_timeout_s) as client:
        cache = KeySetCache(config, client)
        try:
            keys = await cache.load_key_set()
        except TransportError as e:
            print(f"✗ Unable to load web keys from {config.jwks_uri}: {e}")
            return False

    print(f"✓ {len(keys)} keys from {config.jwks_uri}")
    for key in keys:
        print(f"    - kid={key.kid} alg={key.alg} use={key.use}")
    return True


def serve(settings: Settings, host: str, port: int) -> bool:
    import uvicorn

    if load_config(settings) is None:
        return False
    uvicorn.run("myoauth.main:create_app", factory=True, host=host, port=port)
    return True


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="OAuth 2.0 authorization code flow with PKCE for Amazon Cognito",
        prog="myoauth",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the application server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    subparsers.add_parser("authorize-url", help="Print an authorization URL with a fresh state and PKCE pair")
    subparsers.add_parser("jwks", help="List the keys of the user pool's JWKS")

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "serve":
        success = serve(settings, args.host, args.port)
        sys.exit(0 if success else 1)

    elif args.command == "authorize-url":
        success = authorize_url(settings)
        sys.exit(0 if success else 1)

    elif args.command == "jwks":
        success = asyncio.run(list_keys(settings))
        sys.exit(0 if success else 1)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
