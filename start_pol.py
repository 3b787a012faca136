"""
Proof-of-Life — Launcher
========================
Command-line entry point for the liveness verification engine.

Usage:
  python start_pol.py verify --identity alice --signals capture.jsonl
  python start_pol.py verify --identity alice --signals capture.jsonl --template alice.npy
  python start_pol.py validate POL-20260101-120000-AB12
  python start_pol.py revoke POL-20260101-120000-AB12
  python start_pol.py pool

Tokens are kept in a ledger snapshot (JSON) so validate/revoke work
across invocations.
"""

import argparse
import json
import os
import sys

import numpy as np

# Add root
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from pol_challenge import ChallengeGenerator
from pol_replay_guard import AntiReplayGuard
from pol_scoring import get_score_label
from pol_session import VerificationSessionCoordinator
from pol_signals import RecordedSignalProvider
from pol_store import InMemoryUserRecordStore
from pol_tokens import TokenLedger
from pol_utils_core import CONFIG, setup_logger
from security.audit_trail import CryptoAuditTrail

_log = setup_logger("POL")

DEFAULT_LEDGER = os.path.join(CONFIG["logging"]["log_dir"], "pol_ledger.json")


def _open_ledger(path: str, audit=None) -> TokenLedger:
    ledger = TokenLedger(audit=audit)
    if os.path.exists(path):
        ledger.load(path)
    return ledger


def cmd_verify(args) -> int:
    provider = RecordedSignalProvider.from_jsonl(args.signals)

    if args.template:
        descriptor = np.load(args.template)
    else:
        descriptor = provider.first_descriptor()
    if descriptor is None:
        print("[POL] No descriptor available for enrollment (use --template).")
        return 2

    audit = CryptoAuditTrail(args.audit) if args.audit else None
    store = InMemoryUserRecordStore()
    store.enroll(args.identity, descriptor, {"frames_used": 1})
    ledger = _open_ledger(args.ledger, audit)
    guard = AntiReplayGuard()

    session_cfg = {}
    if args.frame_interval is not None:
        session_cfg["frame_interval"] = args.frame_interval

    coordinator = VerificationSessionCoordinator(
        identity=args.identity,
        provider=provider,
        store=store,
        guard=guard,
        ledger=ledger,
        generator=ChallengeGenerator(pool=args.challenge),
        timer_seconds=args.timer,
        config=session_cfg,
        audit=audit,
        on_progress=(lambda p, face: print(f"\r[POL] progress {p:3d}% face={'yes' if face else 'no '}",
                                           end="", flush=True)) if args.verbose else None,
    )

    try:
        outcome = coordinator.run()
    finally:
        store.close()
    if args.verbose:
        print()

    print("=" * 60)
    print(f"  Identity:  {args.identity}")
    if coordinator.challenge is not None:
        print(f"  Challenge: {coordinator.challenge.type} ({coordinator.challenge.instruction})")
    if outcome.score_result is not None:
        s = outcome.score_result
        print(f"  Score:     {s.score:.2f} ({get_score_label(s.level)})")
    if outcome.reason:
        print(f"  Reason:    {outcome.reason}")
    if outcome.token is not None:
        print(f"  Token:     {outcome.token.token_id}")
        print(f"  Expires:   {ledger.remaining_time(outcome.token)['formatted']}")
    print("=" * 60)

    ledger.save(args.ledger)
    return 0 if outcome.passed else 1


def cmd_validate(args) -> int:
    ledger = _open_ledger(args.ledger)
    result = ledger.validate(args.token_id)
    ledger.save(args.ledger)
    if result["valid"]:
        token = result["token"]
        print(f"[POL] VALID  {token.token_id} ({token.identity}), "
              f"{ledger.remaining_time(token)['formatted']} left")
        return 0
    print(f"[POL] INVALID  {result['reason']}")
    return 1


def cmd_revoke(args) -> int:
    ledger = _open_ledger(args.ledger)
    if not ledger.revoke(args.token_id):
        print("[POL] Token not found.")
        return 1
    ledger.save(args.ledger)
    print(f"[POL] Revoked {args.token_id}")
    return 0


def cmd_pool(args) -> int:
    pool = ChallengeGenerator().get_challenge_pool()
    if args.json:
        print(json.dumps(pool, indent=2))
        return 0
    for entry in pool:
        print(f"  {entry['icon']:<4} {entry['type']:<16} {entry['difficulty']:<7} {entry['instruction']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Proof-of-Life Launcher")
    parser.add_argument("--ledger", type=str, default=DEFAULT_LEDGER,
                        help="Token ledger snapshot (JSON)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("verify", help="Run one verification attempt on recorded signals")
    p.add_argument("--identity", required=True, help="Identity to verify")
    p.add_argument("--signals", required=True, help="JSONL file of FrameSignals (null = no face)")
    p.add_argument("--template", type=str, default=None, help="Enrolled descriptor (.npy)")
    p.add_argument("--challenge", nargs="+", default=None,
                   help="Restrict the challenge pool (e.g. OPEN_MOUTH SMILE)")
    p.add_argument("--timer", type=float, default=None, help="Challenge countdown (seconds)")
    p.add_argument("--frame-interval", type=float, default=None,
                   help="Seconds between replayed frames")
    p.add_argument("--audit", type=str, default=None, help="Hash-chained audit log path")
    p.add_argument("-v", "--verbose", action="store_true", help="Show live progress")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("validate", help="Check a token")
    p.add_argument("token_id")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("revoke", help="Revoke a token")
    p.add_argument("token_id")
    p.set_defaults(func=cmd_revoke)

    p = sub.add_parser("pool", help="List the challenge pool")
    p.add_argument("--json", action="store_true", help="Print as JSON")
    p.set_defaults(func=cmd_pool)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n[POL] Interrupted by User.")
        return 130
    except (OSError, ValueError) as e:
        _log.error("Critical Error: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
