#!/usr/bin/env python3
"""
THINROUTER CLI

Command-line interface for the router protocol helpers and the
multi-chain deployment orchestrator.

Usage:
    python -m tools.thinrouter <command> [subcommand] [options]

Commands:
    deploy-factory   Deploy the CREATE2 factory on every selected chain
    deploy-router    Deploy the router through the factory (uniform address)
    deploy-direct    Deploy the router with plain CREATE, per-chain args
    readiness        Pre-flight report, sends nothing
    verify           Re-read router getters and refresh records
    balances         Deployer balance on every selected chain
    configure        Apply adapters and fee settings to deployed routers
    address          CREATE / CREATE2 address derivation
    hash             Message hash, global route id, intent digest
    sign-intent      Sign a RouteIntent with DEPLOYER_PRIVATE_KEY
    config           Show, get or validate the effective configuration

Exit codes: 0 success (skipped chains included), 1 unexpected error,
2 usage or configuration error.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tools.thinrouter import __version__
from tools.thinrouter.errors import ConfigurationError, RouterError


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

BPS_ENV = {
    "setProtocolFeeBps": "PROTOCOL_FEE_BPS",
    "setRelayerFeeBps": "RELAYER_FEE_BPS",
    "setProtocolShareBps": "PROTOCOL_SHARE_BPS",
    "setLPShareBps": "LP_SHARE_BPS",
}


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.safe_dump(json.loads(json.dumps(data, default=str)), default_flow_style=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, dict) and isinstance(data.get("chains"), list):
        data = data["chains"]
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers: List[str] = []
        for row in data:
            headers.extend(k for k in row if k not in headers)
        rows = [[str(row.get(h, ""))[:44] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = [" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))]
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _read_json_arg(value: str) -> Any:
    """Inline JSON, or ``@path`` to a JSON file."""
    try:
        if value.startswith("@"):
            return json.loads(Path(value[1:]).read_text(encoding="utf-8"))
        return json.loads(value)
    except (OSError, json.JSONDecodeError) as e:
        raise CLIError(f"cannot read JSON argument: {e}", EXIT_USAGE) from e


def _split_csv(value: Optional[str]) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class ThinRouterCLI:
    """Main CLI application."""

    def __init__(self, client_factory: Any = None):
        self._client_factory = client_factory
        self._exit_code = EXIT_OK
        self.parser = argparse.ArgumentParser(
            prog="thinrouter",
            description="ThinRouter protocol tools and deterministic multi-chain deployment",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument("--version", "-V", action="version", version=f"thinrouter {__version__}")
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--config", "-c", help="YAML configuration file")
        self.parser.add_argument("--chains", help="Comma-separated chain names or ids (overrides SELECT_CHAINS)")
        self.parser.add_argument("--state-dir", help="Directory for deployment records")
        self.parser.add_argument("--quiet", "-q", action="store_true", help="Suppress error messages")

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_deploy_commands()
        self._register_address_commands()
        self._register_hash_commands()
        self._register_config_commands()

    def _register_deploy_commands(self) -> None:
        self.subparsers.add_parser("deploy-factory", help="Deploy the CREATE2 factory")

        router = self.subparsers.add_parser("deploy-router", help="Deploy the router via the factory")
        router.add_argument("--artifact", help="Router artifact (overrides ROUTER_ARTIFACT)")
        router.add_argument("--salt", help="0x-prefixed 32-byte salt (overrides SALT_HEX)")
        router.add_argument("--args", help="Constructor args JSON or @file (overrides CONSTRUCTOR_ARGS_JSON)")

        direct = self.subparsers.add_parser("deploy-direct", help="Deploy the router with plain CREATE")
        direct.add_argument("--artifact", help="Router artifact (overrides ROUTER_ARTIFACT)")
        direct.add_argument("--fee-recipient", help="Fee recipient (default: FEE_RECIPIENT or deployer)")

        readiness = self.subparsers.add_parser("readiness", help="Pre-flight report")
        readiness.add_argument("--artifact", help="Router artifact used to predict the router address")

        self.subparsers.add_parser("verify", help="Verify deployed router getters")
        self.subparsers.add_parser("balances", help="Deployer balances")

        configure = self.subparsers.add_parser("configure", help="Configure deployed routers")
        configure.add_argument("--adapters", help="Comma-separated adapters (default: ADAPTER_ADDRESSES)")
        configure.add_argument("--fee-collector", help="Fee collector (default: FEE_COLLECTOR)")

    def _register_address_commands(self) -> None:
        address = self.subparsers.add_parser("address", help="Contract address derivation")
        address_sub = address.add_subparsers(dest="subcommand")

        create = address_sub.add_parser("create", help="CREATE address from sender and nonce")
        create.add_argument("--sender", "-s", required=True, help="Deployer address")
        create.add_argument("--nonce", "-n", type=int, required=True, help="Account nonce")

        create2 = address_sub.add_parser("create2", help="CREATE2 address")
        create2.add_argument("--factory", required=True, help="Factory address")
        create2.add_argument("--salt", required=True, help="32-byte salt")
        code = create2.add_mutually_exclusive_group(required=True)
        code.add_argument("--init-code", help="Creation code hex")
        code.add_argument("--init-code-hash", help="keccak256 of the creation code")
        code.add_argument("--artifact", help="Artifact whose bytecode is the creation code")

    def _register_hash_commands(self) -> None:
        hash_cmd = self.subparsers.add_parser("hash", help="Protocol hashes")
        hash_sub = hash_cmd.add_subparsers(dest="subcommand")

        message = hash_sub.add_parser("message", help="Message hash and global route id")
        message.add_argument("--src-chain-id", type=int, required=True)
        message.add_argument("--dst-chain-id", type=int, required=True)
        message.add_argument("--initiator", required=True, help="Source adapter / caller")
        message.add_argument("--recipient", required=True, help="Resolved target")
        message.add_argument("--asset", required=True)
        message.add_argument("--amount", type=int, required=True, help="Gross amount")
        message.add_argument("--payload", default="0x", help="Payload hex")
        message.add_argument("--nonce", type=int, required=True)

        intent = hash_sub.add_parser("intent", help="EIP-712 digest of a RouteIntent")
        self._add_intent_arguments(intent)

        sign = self.subparsers.add_parser("sign-intent", help="Sign a RouteIntent")
        self._add_intent_arguments(sign)
        sign.add_argument("--key-env", default="DEPLOYER_PRIVATE_KEY", help="Variable holding the private key")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., deploy.max_workers)")

        config_sub.add_parser("show", help="Show effective configuration")
        config_sub.add_parser("validate", help="Validate configuration")

    @staticmethod
    def _add_intent_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--intent", "-i", required=True, help="RouteIntent JSON or @file")
        parser.add_argument("--chain-id", type=int, required=True, help="Router chain id")
        parser.add_argument("--router", required=True, help="Router address (verifyingContract)")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        try:
            parsed = self.parser.parse_args(args)
        except SystemExit as e:
            return int(e.code or 0)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_OK

        self._exit_code = EXIT_OK
        try:
            self._load_config(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return self._exit_code

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except ConfigurationError as e:
            if not parsed.quiet:
                print(f"Configuration error: {e}", file=sys.stderr)
            return EXIT_USAGE

        except RouterError as e:
            if not parsed.quiet:
                print(f"Error [{e.code}]: {e}", file=sys.stderr)
            return EXIT_FAILURE

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILURE

    def _load_config(self, args: argparse.Namespace) -> None:
        from tools.thinrouter.config import get_config_manager
        from tools.thinrouter.observability import configure_logging

        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        obs = mgr.config.observability
        configure_logging(obs.log_level.get(), obs.log_format.get(), sys.stderr)

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".strip(), EXIT_USAGE)

        return handler(args)

    # ------------------------------------------------------------------
    # Deployment plumbing
    # ------------------------------------------------------------------

    def _selected_chains(self, args: argparse.Namespace) -> list:
        from tools.thinrouter.chains import load_chain_registry, select_chains
        from tools.thinrouter.config import get_config

        deploy = get_config().deploy
        chains = load_chain_registry(deploy.chain_registry.get() or None)
        selectors = _split_csv(args.chains) if args.chains else deploy.chains.get()
        return select_chains(chains, selectors)

    def _orchestrator(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.config import get_config
        from tools.thinrouter.deploy import DeploySettings, DeploymentOrchestrator, web3_client_factory
        from tools.thinrouter.store import DeploymentStore
        from tools.thinrouter.wallet import load_deployer, load_dotenv

        load_dotenv()
        deploy = get_config().deploy
        client_factory = self._client_factory or web3_client_factory(
            timeout_seconds=deploy.rpc_timeout_seconds.get(),
            retry_attempts=deploy.rpc_retry_attempts.get(),
            requests_per_minute=deploy.rpc_requests_per_minute.get(),
        )
        return DeploymentOrchestrator(
            chains=self._selected_chains(args),
            deployer=load_deployer(),
            store=DeploymentStore(args.state_dir or deploy.state_dir.get()),
            client_factory=client_factory,
            settings=DeploySettings.from_config(deploy),
        )

    @staticmethod
    def _artifact(path: Optional[str], default: Any) -> Any:
        from tools.thinrouter.artifacts import load_artifact

        return load_artifact(path or default.get(), search_roots=(Path.cwd(), Path.cwd() / "contracts"))

    def _reports(self, reports: Sequence[Any]) -> Dict[str, Any]:
        from tools.thinrouter.deploy import summarize

        summary = summarize(reports)
        if summary["unexpected_errors"]:
            self._exit_code = EXIT_FAILURE
        return {"summary": summary, "chains": [r.to_dict() for r in reports]}

    # Deployment handlers
    def _handle_deploy_factory(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.config import get_config

        artifact = self._artifact(None, get_config().deploy.factory_artifact)
        return self._reports(self._orchestrator(args).deploy_factories(artifact.bytecode))

    def _handle_deploy_router(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.artifacts import creation_code, parse_constructor_args
        from tools.thinrouter.config import get_config, get_config_manager, is_salt_hex

        deploy = get_config().deploy
        if args.salt:
            if not is_salt_hex(args.salt):
                raise CLIError("--salt must be a 0x-prefixed 32-byte hex value", EXIT_USAGE)
            salt = bytes.fromhex(args.salt[2:])
        else:
            salt = get_config_manager().require_salt()
        artifact = self._artifact(args.artifact, deploy.router_artifact)
        raw_args = _read_json_arg(args.args) if args.args else deploy.constructor_args_json.get()
        code = creation_code(artifact, parse_constructor_args(raw_args, artifact))
        return self._reports(self._orchestrator(args).deploy_routers(salt, code))

    def _handle_deploy_direct(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.config import get_config

        artifact = self._artifact(args.artifact, get_config().deploy.router_artifact)
        fee_recipient = args.fee_recipient or os.environ.get("FEE_RECIPIENT", "").strip() or None
        return self._reports(self._orchestrator(args).deploy_direct(artifact, fee_recipient=fee_recipient))

    def _handle_readiness(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.artifacts import creation_code, parse_constructor_args
        from tools.thinrouter.config import get_config, get_config_manager, is_salt_hex

        deploy = get_config().deploy
        orchestrator = self._orchestrator(args)
        salt = code = None
        if is_salt_hex(deploy.salt_hex.get()):
            salt = get_config_manager().require_salt()
            try:
                artifact = self._artifact(args.artifact, deploy.router_artifact)
            except ConfigurationError as e:
                print(f"Warning: router address not predicted: {e}", file=sys.stderr)
            else:
                code = creation_code(artifact, parse_constructor_args(deploy.constructor_args_json.get(), artifact))
        rows = orchestrator.readiness(salt, code)
        return {
            "deployer": orchestrator.deployer_address,
            "ready": sum(1 for r in rows if r.ready),
            "chains": [r.to_dict() for r in rows],
        }

    def _handle_verify(self, args: argparse.Namespace) -> Any:
        return self._reports(self._orchestrator(args).verify())

    def _handle_balances(self, args: argparse.Namespace) -> Any:
        orchestrator = self._orchestrator(args)
        return {"deployer": orchestrator.deployer_address, "chains": orchestrator.balances()}

    def _handle_configure(self, args: argparse.Namespace) -> Any:
        adapters = _split_csv(
            args.adapters
            or os.environ.get("ADAPTER_ADDRESSES")
            or os.environ.get("ADAPTER_ADDRESS")
        )
        fee_collector = args.fee_collector or os.environ.get("FEE_COLLECTOR", "").strip() or None
        bps: Dict[str, int] = {}
        for fn_name, env_name in BPS_ENV.items():
            raw = os.environ.get(env_name, "").strip()
            if raw:
                try:
                    bps[fn_name] = int(raw, 0)
                except ValueError as e:
                    raise CLIError(f"{env_name} must be an integer", EXIT_USAGE) from e
        if not adapters and not fee_collector and not any(bps.values()):
            raise CLIError("nothing to configure: set adapters, a fee collector or bps values", EXIT_USAGE)
        reports = self._orchestrator(args).configure_routers(adapters, fee_collector, bps)
        return self._reports(reports)

    # Address handlers
    def _handle_address_create(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.codec import contract_creation_address, to_address

        return {
            "sender": to_address(args.sender),
            "nonce": args.nonce,
            "address": contract_creation_address(args.sender, args.nonce),
        }

    def _handle_address_create2(self, args: argparse.Namespace) -> Any:
        from eth_utils import keccak

        from tools.thinrouter.codec import create2_address, to_address, to_bytes32, to_raw_bytes

        if args.init_code_hash:
            code_hash = to_bytes32(args.init_code_hash)
        elif args.artifact:
            code_hash = keccak(self._artifact(args.artifact, None).bytecode)
        else:
            code_hash = keccak(to_raw_bytes(args.init_code))
        return {
            "factory": to_address(args.factory),
            "salt": "0x" + to_bytes32(args.salt).hex(),
            "initCodeHash": "0x" + code_hash.hex(),
            "address": create2_address(args.factory, args.salt, code_hash),
        }

    # Protocol handlers
    def _handle_hash_message(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.codec import global_route_id, message_hash, payload_hash

        p_hash = payload_hash(args.payload)
        m_hash = message_hash(
            args.src_chain_id, args.initiator, args.recipient, args.asset,
            args.amount, p_hash, args.nonce, args.dst_chain_id,
        )
        route_id = global_route_id(args.src_chain_id, args.dst_chain_id, args.initiator, m_hash, args.nonce)
        return {
            "payloadHash": "0x" + p_hash.hex(),
            "messageHash": "0x" + m_hash.hex(),
            "globalRouteId": "0x" + route_id.hex(),
        }

    def _intent_and_domain(self, args: argparse.Namespace) -> tuple:
        from tools.thinrouter.codec import Eip712Domain, RouteIntent
        from tools.thinrouter.config import get_config

        data = _read_json_arg(args.intent)
        try:
            intent = RouteIntent.from_dict(data)
        except (KeyError, TypeError, ValueError, RouterError) as e:
            raise CLIError(f"malformed intent: {e}", EXIT_USAGE) from e
        settings = get_config().router
        domain = Eip712Domain(
            chain_id=args.chain_id,
            verifying_contract=args.router,
            name=settings.domain_name.get(),
            version=settings.domain_version.get(),
        )
        return intent, domain

    def _handle_hash_intent(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.codec import domain_separator, route_intent_struct_hash, typed_data_hash

        intent, domain = self._intent_and_domain(args)
        return {
            "domainSeparator": "0x" + domain_separator(domain).hex(),
            "structHash": "0x" + route_intent_struct_hash(intent).hex(),
            "digest": "0x" + typed_data_hash(domain, intent).hex(),
        }

    def _handle_sign_intent(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.signing import sign_route_intent
        from tools.thinrouter.wallet import load_dotenv

        load_dotenv()
        key = os.environ.get(args.key_env, "").strip()
        if not key:
            raise CLIError(f"{args.key_env} is not set", EXIT_USAGE)
        intent, domain = self._intent_and_domain(args)
        return sign_route_intent(key, domain, intent).to_dict()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.config import get_config_manager
        return {"path": args.path, "value": get_config_manager().get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from tools.thinrouter.config import get_config_manager
        errors = get_config_manager().validate()
        if errors:
            self._exit_code = EXIT_USAGE
        return {"valid": not errors, "errors": errors}


def main() -> int:
    """CLI entry point."""
    cli = ThinRouterCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
