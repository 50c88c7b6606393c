"""Tests for fuzzy scoring, the history index and command line cycling."""

import itertools
import json
import threading
from pathlib import Path

import pytest

from docli.core.errors import HistoryPersistError
from docli.history import HistoryIndex, fuzzy_match, score
from docli.ui.command_line import CommandLine


def _clock():
    counter = itertools.count(1)
    return lambda: float(next(counter))


class _DiskFull:
    """Writable file that runs out of space after ``room`` writes."""

    def __init__(self, handle, room):
        self._handle = handle
        self.room = room

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self._handle.close()

    def write(self, text):
        if self.room == 0:
            raise OSError(28, "No space left on device")
        self.room -= 1
        return self._handle.write(text)

    def flush(self):
        self._handle.flush()


class TestScore:
    """Tests for subsequence scoring."""

    def test_contiguous_match_scores_bonus(self):
        assert score("abc", "abc") == 7

    def test_gapped_match(self):
        assert score("ac", "abc") == 2

    def test_best_alignment_wins(self):
        # greedy would match the first 'a' and lose the contiguity bonus
        assert score("ab", "a_ab") == 4

    def test_case_insensitive(self):
        assert score("USE", "use mydb") == score("use", "use mydb")

    def test_no_match(self):
        assert score("xyz", "use mydb") is None
        assert score("ba", "ab") is None

    def test_empty_query(self):
        assert score("", "anything") == 0


class TestFuzzyMatch:
    """Tests for completion candidate ranking."""

    def test_prefix_matches_first(self):
        result = fuzzy_match("co", ["count", "countDocuments", "aggregate", "getCollection"])
        assert result[:2] == ["count", "countDocuments"]
        assert "getCollection" in result
        assert "aggregate" not in result

    def test_subsequence(self):
        assert "getCollectionNames" in fuzzy_match("gcn", ["getCollectionNames", "find"])

    def test_empty_text_returns_all(self):
        assert fuzzy_match("", ["a", "b", "c"], max_results=2) == ["a", "b"]


class TestHistoryIndex:
    """Tests for the append-only history log."""

    def test_search_ranks_by_score_then_recency(self):
        history = HistoryIndex(clock=_clock())
        history.append("use mydb")
        history.append("db.u.save()")
        history.append("use otherdb")

        results = [e.text for e in history.search("use")]
        assert results == ["use otherdb", "use mydb", "db.u.save()"]

    def test_search_skips_non_matches(self):
        history = HistoryIndex(clock=_clock())
        history.append("use mydb")
        history.append("connect mongodb://x")
        assert [e.text for e in history.search("udb")] == ["use mydb"]

    def test_empty_query_returns_most_recent_first(self):
        history = HistoryIndex(clock=_clock())
        for text in ("a", "b", "c"):
            history.append(text)
        assert [e.text for e in history.search("")] == ["c", "b", "a"]

    def test_search_limit(self):
        history = HistoryIndex(clock=_clock())
        for i in range(5):
            history.append(f"use db{i}")
        assert len(history.search("use", limit=2)) == 2

    def test_persist_and_load_round_trip(self, tmp_path):
        path = tmp_path / "command_history.jsonl"
        history = HistoryIndex(path, clock=_clock())
        history.append("use mydb")
        history.append("db.users.find()")
        assert history.persist() == 2

        reloaded = HistoryIndex(path)
        assert reloaded.load() == 2
        assert [e.text for e in reloaded.entries] == ["use mydb", "db.users.find()"]
        assert reloaded.entries[0].timestamp == 1.0

    def test_persist_only_writes_new_entries(self, tmp_path):
        path = tmp_path / "command_history.jsonl"
        history = HistoryIndex(path)
        history.append("use a")
        history.persist()
        history.append("use b")
        assert history.persist() == 1
        assert history.persist() == 0
        assert len(path.read_text().splitlines()) == 2

    def test_loaded_entries_are_not_rewritten(self, tmp_path):
        path = tmp_path / "command_history.jsonl"
        path.write_text(json.dumps({"text": "use a", "ts": 1}) + "\n")
        history = HistoryIndex(path)
        history.load()
        history.append("use b")
        history.persist()
        assert [json.loads(line)["text"] for line in path.read_text().splitlines()] == ["use a", "use b"]

    def test_load_skips_bad_lines_and_unknown_fields(self, tmp_path):
        path = tmp_path / "command_history.jsonl"
        path.write_text(
            "\n".join(
                [
                    json.dumps({"text": "use a", "ts": 1, "extra": "ignored"}),
                    "not json",
                    json.dumps({"ts": 2}),
                    json.dumps(["text"]),
                    "",
                    json.dumps({"text": "use b"}),
                ]
            )
        )
        history = HistoryIndex(path)
        assert history.load() == 2
        assert [e.text for e in history.entries] == ["use a", "use b"]
        assert history.entries[1].timestamp == 0.0

    def test_disabled_history_never_touches_disk(self, tmp_path):
        path = tmp_path / "command_history.jsonl"
        path.write_text(json.dumps({"text": "use a", "ts": 1}) + "\n")

        history = HistoryIndex(path, enabled=False)
        assert history.load() == 0
        history.append("use b")
        assert history.persist() == 0
        assert path.read_text().count("\n") == 1

    def test_missing_file_loads_nothing(self, tmp_path):
        assert HistoryIndex(tmp_path / "missing.jsonl").load() == 0

    def test_persist_failure_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        history = HistoryIndex(blocker / "history.jsonl")
        history.append("use a")
        with pytest.raises(HistoryPersistError):
            history.persist()

    def test_second_load_adds_nothing(self, tmp_path):
        path = tmp_path / "command_history.jsonl"
        path.write_text(json.dumps({"text": "use a", "ts": 1}) + "\n")
        history = HistoryIndex(path)
        history.append("use b")

        assert history.load() == 1
        assert history.load() == 0
        assert [e.text for e in history.entries] == ["use a", "use b"]
        history.persist()
        assert [json.loads(line)["text"] for line in path.read_text().splitlines()] == ["use a", "use b"]

    def test_failed_persist_keeps_lines_already_written(self, tmp_path, monkeypatch):
        path = tmp_path / "command_history.jsonl"
        history = HistoryIndex(path)
        for text in ("use a", "use b", "use c"):
            history.append(text)

        real_open = Path.open

        def open_full(self, *args, **kwargs):
            return _DiskFull(real_open(self, *args, **kwargs), room=1)

        monkeypatch.setattr(Path, "open", open_full)
        with pytest.raises(HistoryPersistError, match="1 of 3 written"):
            history.persist()
        monkeypatch.undo()

        assert history.persist() == 2
        assert [json.loads(line)["text"] for line in path.read_text().splitlines()] == ["use a", "use b", "use c"]

    def test_concurrent_appends_are_all_kept(self):
        history = HistoryIndex()

        def worker(n):
            for i in range(100):
                history.append(f"cmd {n} {i}")
                history.search("cmd")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(history) == 400


class TestCommandLine:
    """Tests for the command line buffer."""

    def test_typing_and_backspace(self):
        line = CommandLine()
        line.start()
        for char in "use x":
            line.add_char(char)
        assert line.backspace() is True
        assert line.buffer == "use "

    def test_backspace_on_empty(self):
        line = CommandLine()
        line.start()
        assert line.backspace() is False

    def test_submit_strips_and_clears(self):
        line = CommandLine()
        line.start("  use mydb  ")
        assert line.submit() == "use mydb"
        assert line.buffer == ""

    def test_cycle_uses_typed_text_as_query(self):
        history = HistoryIndex(clock=_clock())
        history.append("use mydb")
        history.append("db.u.save()")
        history.append("use other")

        line = CommandLine()
        line.start("use")
        assert line.cycle_history(history) is True
        assert line.buffer == "use other"
        assert line.cycle_history(history) is True
        assert line.buffer == "use mydb"
        assert line.cycling

    def test_cycle_wraps_and_reverses(self):
        history = HistoryIndex(clock=_clock())
        history.append("use a")
        history.append("use b")

        line = CommandLine()
        line.start("use")
        line.cycle_history(history)
        line.cycle_history(history)
        line.cycle_history(history)
        assert line.buffer == "use b"
        line.cycle_history(history, -1)
        assert line.buffer == "use a"

    def test_cycle_backwards_from_start_goes_to_last(self):
        history = HistoryIndex(clock=_clock())
        history.append("use a")
        history.append("use b")

        line = CommandLine()
        line.start("use")
        line.cycle_history(history, -1)
        assert line.buffer == "use a"

    def test_cycle_deduplicates(self):
        history = HistoryIndex(clock=_clock())
        history.append("use a")
        history.append("use a")

        line = CommandLine()
        line.start("")
        line.cycle_history(history)
        line.cycle_history(history)
        assert line.buffer == "use a"

    def test_typing_resets_cycle(self):
        history = HistoryIndex(clock=_clock())
        history.append("use a")
        line = CommandLine()
        line.start("use")
        line.cycle_history(history)
        line.add_char("x")
        assert not line.cycling

    def test_no_match(self):
        history = HistoryIndex()
        history.append("use a")
        line = CommandLine()
        line.start("zzz")
        assert line.cycle_history(history) is False
        assert line.buffer == "zzz"
