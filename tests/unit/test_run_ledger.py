"""Tests for the append-only, hash-chained Run Ledger."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from archforge.core.run_ledger import LedgerIntegrityError, RunLedger
from archforge.models.ledger import LedgerEntry


def _entry(run_id: str, job_id: str, transition: str = "pending->running", **kw) -> LedgerEntry:
    return LedgerEntry(run_id=run_id, job_id=job_id, state_transition=transition, **kw)


class TestAppend:
    def test_first_entry_has_empty_previous_hash(self, ledger, run_id):
        sealed = ledger.append(_entry(run_id, "linux-amd64"))
        assert sealed.previous_entry_hash == ""
        assert len(sealed.entry_hash) == 64

    def test_entries_are_chained(self, ledger, run_id):
        first = ledger.append(_entry(run_id, "linux-amd64"))
        second = ledger.append(_entry(run_id, "linux-amd64", "running->succeeded"))
        assert second.previous_entry_hash == first.entry_hash

    def test_chains_are_per_run(self, ledger):
        ledger.append(_entry("run-a", "linux-amd64"))
        other = ledger.append(_entry("run-b", "linux-amd64"))
        assert other.previous_entry_hash == ""

    def test_concurrent_appends_keep_one_chain(self, ledger, run_id):
        def worker(job_id: str) -> None:
            for _ in range(10):
                ledger.append(_entry(run_id, job_id))

        threads = [threading.Thread(target=worker, args=(f"job-{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ledger.get_run_entries(run_id)) == 40
        assert ledger.verify_chain(run_id) is True


class TestQueries:
    def test_job_history(self, ledger, run_id):
        ledger.append(_entry(run_id, "linux-amd64"))
        ledger.append(_entry(run_id, "linux-arm64"))
        ledger.append(_entry(run_id, "linux-amd64", "running->failed", detail="boom"))
        history = ledger.get_job_history(run_id, "linux-amd64")
        assert [e.state_transition for e in history] == ["pending->running", "running->failed"]
        assert history[-1].detail == "boom"

    def test_run_ids_most_recent_first(self, ledger):
        ledger.append(_entry("run-old", "j"))
        ledger.append(_entry("run-new", "j"))
        assert ledger.get_all_run_ids() == ["run-new", "run-old"]

    def test_app_versions(self, ledger, run_id):
        ledger.append(_entry(run_id, "a", app_version="v1.2.3"))
        ledger.append(_entry(run_id, "b", app_version="v1.2.3"))
        assert ledger.app_versions(run_id) == {"v1.2.3"}

    def test_survives_reopen(self, tmp_dir, run_id):
        path = tmp_dir / "reopen.db"
        RunLedger(path).append(_entry(run_id, "a"))
        assert len(RunLedger(path).get_run_entries(run_id)) == 1


class TestVerifyChain:
    def test_empty_run_is_valid(self, ledger):
        assert ledger.verify_chain("nothing-here") is True

    def test_tampered_detail_detected(self, ledger, run_id, tmp_dir):
        ledger.append(_entry(run_id, "a"))
        ledger.append(_entry(run_id, "a", "running->failed", detail="compile error"))

        with sqlite3.connect(str(tmp_dir / "test_ledger.db")) as conn:
            conn.execute("UPDATE run_ledger SET detail = 'all good' WHERE detail != ''")
            conn.commit()

        with pytest.raises(LedgerIntegrityError, match="Tampered"):
            ledger.verify_chain(run_id)

    def test_deleted_entry_detected(self, ledger, run_id, tmp_dir):
        ledger.append(_entry(run_id, "a"))
        ledger.append(_entry(run_id, "a", "running->succeeded"))
        ledger.append(_entry(run_id, "merge"))

        with sqlite3.connect(str(tmp_dir / "test_ledger.db")) as conn:
            conn.execute("DELETE FROM run_ledger WHERE state_transition = 'running->succeeded'")
            conn.commit()

        with pytest.raises(LedgerIntegrityError, match="Chain broken"):
            ledger.verify_chain(run_id)
