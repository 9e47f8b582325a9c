"""Command line entry point for baca."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from . import __version__
from .backend import BackendError, CredentialError, KubernetesBackend, collect_credentials
from .change import ChangeLoadError, load_change
from .config import BacaSettings, get_settings
from .kube import ClusterConfig, KubectlRunner, KubectlRunnerError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the baca CLI."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_client(settings: BacaSettings, args: argparse.Namespace) -> KubectlRunner:
    """Create the kubectl runner for the cluster selected by flags and settings."""

    cluster = ClusterConfig(
        kubeconfig=args.kubeconfig or settings.kubeconfig,
        context=args.context or settings.context,
    )
    executable = Path(settings.kubectl_path) if settings.kubectl_path else None
    return KubectlRunner(executable, cluster=cluster)


def cmd_setup(args: argparse.Namespace, settings: BacaSettings) -> int:
    logger.info("setting up execution backend")
    try:
        credentials = collect_credentials(
            github_token=args.github_token,
            copilot_token=args.copilot_token,
            gemini_api_key=args.gemini_api_key,
            gemini_oauth=args.gemini_oauth,
        )
        backend = KubernetesBackend.from_settings(
            build_client(settings, args), settings, namespace=args.namespace
        )
        asyncio.run(backend.setup(credentials))
    except (CredentialError, BackendError, KubectlRunnerError, ValueError) as exc:
        logger.error("failed to setup backend: %s", exc)
        return 1

    logger.info("setup completed")
    return 0


def cmd_apply(args: argparse.Namespace, settings: BacaSettings) -> int:
    logger.info("applying change from %s", args.change_file)
    try:
        change = load_change(args.change_file)
        logger.info(
            "loaded change",
            extra={"repos": len(change.spec.repos), "agent": change.spec.agent},
        )
        backend = KubernetesBackend.from_settings(
            build_client(settings, args), settings, namespace=args.namespace
        )
        asyncio.run(
            backend.apply_change(
                change,
                wait=args.wait,
                retries=args.retries,
                fork_org=args.fork_org,
                fork=args.fork,
            )
        )
    except (ChangeLoadError, BackendError, KubectlRunnerError, ValueError) as exc:
        logger.error("failed to apply change: %s", exc)
        return 1

    logger.info("apply completed")
    return 0


def _add_cluster_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--kubeconfig", type=Path, default=None, help="Path to kubeconfig file")
    parser.add_argument("--context", default=None, help="kubeconfig context to use")
    parser.add_argument(
        "--namespace",
        default=None,
        help="Kubernetes namespace (default: BACA_NAMESPACE or 'default')",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="baca",
        description="Background coding agent: apply a Change across many repositories.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Log level (debug, info, warning, error)")
    sub = parser.add_subparsers(dest="cmd")

    p_k8s = sub.add_parser("k8s", help="Manage the Kubernetes execution backend")
    k8s_sub = p_k8s.add_subparsers(dest="k8s_cmd")

    p_setup = k8s_sub.add_parser(
        "setup",
        help="Create the namespace and the credentials secret used by jobs",
    )
    _add_cluster_arguments(p_setup)
    p_setup.add_argument("--github-token", help="GitHub token (defaults to GITHUB_TOKEN env var)")
    p_setup.add_argument(
        "--copilot-token",
        help="GitHub token for Copilot CLI (defaults to COPILOT_TOKEN env var, or uses GITHUB_TOKEN)",
    )
    p_setup.add_argument("--gemini-api-key", help="Gemini API key (defaults to GEMINI_API_KEY env var)")
    p_setup.add_argument(
        "--gemini-oauth",
        action="store_true",
        help="Copy OAuth credentials from ~/.gemini/ for gemini authentication",
    )
    p_setup.set_defaults(func=cmd_setup)

    p_apply = sub.add_parser("apply", help="Apply a Change definition")
    p_apply.add_argument("change_file", type=Path, help="Path to the Change YAML file")
    _add_cluster_arguments(p_apply)
    p_apply.add_argument(
        "--wait",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Wait for jobs to complete (default: wait)",
    )
    p_apply.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Number of times to retry failed jobs (BackoffLimit)",
    )
    p_apply.add_argument(
        "--fork-org",
        default="",
        help="GitHub organization/user to create forks under (default: authenticated user)",
    )
    p_apply.add_argument(
        "--no-fork",
        dest="fork",
        action="store_false",
        help="Clone the repository directly instead of working on a fork",
    )
    p_apply.set_defaults(func=cmd_apply)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return

    settings = get_settings()
    configure_logging((args.log_level or settings.log_level).upper())

    exit_code = args.func(args, settings)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
