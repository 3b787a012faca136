"""
Proof-of-Life — Launcher & Recorded Signal Tests
================================================
End-to-end run of `start_pol.py` on a recorded JSONL capture, plus
ledger validate / revoke across invocations.
"""

import json
import os
import sys

import pytest

# Add project root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import start_pol
from pol_signals import RecordedSignalProvider
from signal_factory import descriptor_at, make_signal


def _write_capture(path, signals):
    with open(path, "w", encoding="utf-8") as f:
        for s in signals:
            f.write(("null" if s is None else json.dumps(s.to_dict())) + "\n")


# ── RecordedSignalProvider ────────────────────────────────────

def test_recorded_provider_replays_jsonl(tmp_path):
    path = str(tmp_path / "capture.jsonl")
    _write_capture(path, [None, make_signal(mar=0.5, descriptor=descriptor_at(0.1))])

    provider = RecordedSignalProvider.from_jsonl(path)
    assert provider.detect(None) is None
    signal = provider.detect(None)
    assert signal.detection_score == 0.9
    assert provider.exhausted
    assert provider.detect(None) is None
    assert provider.first_descriptor()[0] == pytest.approx(0.1)

    provider.rewind()
    assert not provider.exhausted


def test_recorded_provider_reports_bad_line(tmp_path):
    path = tmp_path / "capture.jsonl"
    path.write_text('null\n{"detection_score": \n', encoding="utf-8")
    with pytest.raises(ValueError, match=":2:"):
        RecordedSignalProvider.from_jsonl(str(path))


def test_compare_uses_euclidean_similarity():
    provider = RecordedSignalProvider([])
    assert provider.compare(descriptor_at(0.0), descriptor_at(0.2)) == pytest.approx(0.8)


# ── CLI ───────────────────────────────────────────────────────

def test_pool_command(capsys):
    assert start_pol.main(["pool", "--json"]) == 0
    pool = json.loads(capsys.readouterr().out)
    assert len(pool) == 9


def test_pool_table(capsys):
    assert start_pol.main(["pool"]) == 0
    rows = capsys.readouterr().out.strip().splitlines()
    assert len(rows) == 9
    open_mouth = next(r for r in rows if "OPEN_MOUTH" in r)
    assert "easy" in open_mouth


def test_verify_validate_revoke(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    capture = str(tmp_path / "capture.jsonl")
    ledger = str(tmp_path / "ledger.json")
    signals = [make_signal(mar=0.1, descriptor=descriptor_at(0.0))]
    signals += [make_signal(mar=0.5, descriptor=descriptor_at(0.0))] * 3
    _write_capture(capture, signals)

    code = start_pol.main([
        "--ledger", ledger, "verify", "--identity", "alice", "--signals", capture,
        "--challenge", "OPEN_MOUTH", "--frame-interval", "0.8",
        "--audit", str(tmp_path / "chain.jsonl"),
    ])
    out = capsys.readouterr().out
    assert code == 0, out
    assert "Token:" in out

    with open(ledger, encoding="utf-8") as f:
        token_id = json.load(f)["tokens"][0]["token_id"]

    assert start_pol.main(["--ledger", ledger, "validate", token_id]) == 0
    assert start_pol.main(["--ledger", ledger, "revoke", token_id]) == 0
    assert start_pol.main(["--ledger", ledger, "validate", token_id]) == 1
    assert "revoked" in capsys.readouterr().out
    assert start_pol.main(["--ledger", ledger, "revoke", "POL-NOPE"]) == 1


def test_verify_without_descriptor(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    capture = str(tmp_path / "capture.jsonl")
    _write_capture(capture, [make_signal(mar=0.5)])
    code = start_pol.main(["--ledger", str(tmp_path / "l.json"), "verify",
                           "--identity", "alice", "--signals", capture])
    assert code == 2


def test_missing_capture_file(tmp_path):
    code = start_pol.main(["--ledger", str(tmp_path / "l.json"), "verify",
                           "--identity", "alice", "--signals", str(tmp_path / "none.jsonl")])
    assert code == 2
