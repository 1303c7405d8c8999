"""Run the policy summary CLI from a source checkout."""

from policy_tldr.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
