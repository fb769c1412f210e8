"""Tests for the command line entry point."""

import json
import sys
from datetime import date, timedelta

import pytest

from tourbook import cli
from tourbook.offline.queue import OfflineQueue
from tourbook.offline.store import Draft, FileDraftStore
from tourbook.offline.submitter import BookingSubmitter

from tests.fakes import FakeClient, OfflineSession


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TOURBOOK_CONFIG", raising=False)
    (tmp_path / "config.json").write_text(json.dumps({
        "provider": "peek",
        "peek": {"api_key": "test"},
        "offline": {"drafts_dir": str(tmp_path / "drafts")},
    }))
    return tmp_path


def run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["tourbook", *argv])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    return exc_info.value.code


class TestQuote:
    def test_quote(self, workdir, monkeypatch, capsys):
        code = run(monkeypatch, "--tour", "prague-castle", "--date", "2026-11-03", "--guests", "4", "--quote")

        assert code == 0
        assert "Total:       171.00 EUR" in capsys.readouterr().out

    def test_quote_for_closed_day_mentions_operating_days(self, workdir, monkeypatch, capsys):
        run(monkeypatch, "--tour", "prague-castle", "--date", "2026-11-08", "--guests", "2", "--quote")

        assert "runs on Monday, Tuesday" in capsys.readouterr().out

    def test_unknown_tour(self, workdir, monkeypatch, capsys):
        code = run(monkeypatch, "--tour", "ghost-walk", "--date", "2026-11-03", "--guests", "2", "--quote")

        assert code == 1
        assert "Unknown tour: ghost-walk" in capsys.readouterr().out

    def test_missing_arguments(self, workdir, monkeypatch):
        assert run(monkeypatch, "--tour", "old-town", "--quote") == 2


class TestDrafts:
    def test_list_drafts(self, workdir, monkeypatch, capsys):
        store = FileDraftStore(str(workdir / "drafts"))
        draft = Draft.new({"tourId": "old-town", "date": "2026-11-03", "startTime": "10:00", "groupSize": 2})
        store.create(draft)

        assert run(monkeypatch, "--list-drafts") == 0

        out = capsys.readouterr().out
        assert draft.id in out
        assert "old-town on 2026-11-03 at 10:00 for 2" in out

    def test_list_drafts_empty(self, workdir, monkeypatch, capsys):
        run(monkeypatch, "--list-drafts")
        assert "No pending drafts." in capsys.readouterr().out


class TestBook:
    def test_offline_booking_is_saved_as_draft(self, workdir, monkeypatch, capsys):
        store = FileDraftStore(str(workdir / "drafts"))
        monkeypatch.setattr(cli, "create_client", lambda settings: FakeClient())
        monkeypatch.setattr(
            cli,
            "build_queue",
            lambda config: OfflineQueue(store, BookingSubmitter("https://tours.example.com/booking",
                                                                session=OfflineSession())),
        )
        tour_date = date.today() + timedelta(days=7)

        code = run(
            monkeypatch,
            "--tour", "old-town", "--date", tour_date.isoformat(), "--time", "10:00", "--guests", "2",
            "--first-name", "Ana", "--last-name", "Novak", "--email", "ana@example.com",
            "--phone", "+420 123 456 789", "--country", "CZ", "--book",
        )

        assert code == 0
        assert "saved" in capsys.readouterr().out
        assert len(store.all()) == 1

    def test_invalid_customer_stops_before_submission(self, workdir, monkeypatch, capsys):
        monkeypatch.setattr(cli, "create_client", lambda settings: FakeClient())
        tour_date = date.today() + timedelta(days=7)

        code = run(
            monkeypatch,
            "--tour", "old-town", "--date", tour_date.isoformat(), "--time", "10:00", "--guests", "2",
            "--first-name", "Ana", "--book",
        )

        assert code == 1
        assert "customerInfo.email" in capsys.readouterr().out
