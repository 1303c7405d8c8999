"""CLI for summarizing a privacy policy and managing the summary cache."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path

from policy_tldr.config import get_settings
from policy_tldr.logging_setup import setup_logging
from policy_tldr.services.llm.client import HttpxTransport, LLMError, MissingCredentialError
from policy_tldr.services.policy.summarizer import PolicySummarizer, build_summarizer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize a privacy policy with an LLM.")
    parser.add_argument("--url", default=None, help="Policy URL (also the cache key).")
    parser.add_argument(
        "--file", default=None, help="Read page markup from a local file instead of fetching."
    )
    parser.add_argument(
        "--lang", default=None, help="Summary language (defaults to SUMMARY_LANGUAGE)."
    )
    parser.add_argument(
        "--timeout", type=float, default=None, help="Provider timeout in seconds."
    )
    parser.add_argument(
        "--invalidate", action="store_true", help="Drop the cached summary for --url and exit."
    )
    parser.add_argument("--clear-cache", action="store_true", help="Drop every cached summary.")
    args = parser.parse_args(argv)
    if not args.clear_cache and not args.url:
        parser.error("--url is required unless --clear-cache is given")
    return args


def _progress(step: str) -> None:
    print(f"[summarize] {step}", file=sys.stderr)


async def run(args: argparse.Namespace, summarizer: PolicySummarizer) -> int:
    settings = get_settings()
    if args.clear_cache:
        summarizer.clear_all()
        print("[summarize] cache cleared", file=sys.stderr)
        return 0
    if args.invalidate:
        removed = summarizer.invalidate(args.url)
        print(f"[summarize] removed={removed}", file=sys.stderr)
        return 0

    language = args.lang or settings.summary_language
    config = settings.provider_config()
    if args.timeout is not None:
        config = replace(config, timeout_s=args.timeout)

    try:
        if args.file:
            markup = Path(args.file).read_text(encoding="utf-8")
            record = await summarizer.summarize(
                args.url, markup, language, config, on_progress=_progress
            )
        else:
            record = await summarizer.summarize_url(
                args.url, language, config, on_progress=_progress
            )
    except MissingCredentialError:
        print("LLM error: set LLM_API_KEY to generate summaries.", file=sys.stderr)
        return 1
    except LLMError as exc:
        print(f"LLM error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(record.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    return asyncio.run(_run_with_transport(args))


async def _run_with_transport(args: argparse.Namespace) -> int:
    transport = HttpxTransport(user_agent=get_settings().fetch_user_agent)
    try:
        return await run(args, build_summarizer(get_settings(), transport=transport))
    finally:
        await transport.aclose()


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
