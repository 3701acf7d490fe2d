"""Tests for content hashing and the append-only trace log."""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from intent_hooks.hooks import PostToolUseContext
from intent_hooks.intents import IntentStore
from intent_hooks.trace import (
    MutationType,
    TraceLogger,
    TraceRecord,
    build_record,
    classify_mutation,
    compute_content_hash,
    extract_block,
    get_revision_id,
    hash_file,
    read_trace_log,
    summarize_traces,
)
from intent_hooks.trace.mutation import parse_mutation_type

SHA = "0123456789abcdef0123456789abcdef01234567"
LOGIN_GO = "package auth\n\nfunc Login() error {\n\treturn nil\n}\n"


@pytest.fixture
def trace_logger(workspace, intents_path, trace_path):
    return TraceLogger(
        trace_path,
        workspace_root=workspace,
        model_id="test-model",
        intent_store=IntentStore(intents_path),
    )


def _write_context(**overrides):
    values = {
        "session_id": "S1",
        "tool_name": "write_to_file",
        "arguments": {"path": "src/auth/login.go", "content": LOGIN_GO},
        "active_intent_id": "INT-001",
    }
    values.update(overrides)
    return PostToolUseContext(**values)


class TestContentHash:
    """The hash depends only on the block's bytes."""

    def test_known_digest(self):
        assert compute_content_hash("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_same_block_same_hash_anywhere(self):
        block = "func Login() error {\n\treturn nil\n}"
        first = build_record("src/auth/login.go", block, "INT-001")
        moved = build_record(
            "src/auth/session.go", "// header\n\n" + block, "INT-001", start_line=3, end_line=5
        )

        first_hash = first.files[0].conversations[0].ranges[0].content_hash
        moved_range = moved.files[0].conversations[0].ranges[0]
        assert first_hash == moved_range.content_hash == compute_content_hash(block)
        assert (moved_range.start_line, moved_range.end_line) == (3, 5)

    def test_different_content_different_hash(self):
        assert compute_content_hash("a") != compute_content_hash("a ")

    def test_hash_file(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("hello")
        assert hash_file(path) == compute_content_hash("hello")
        assert hash_file(tmp_path / "missing.txt") is None


class TestExtractBlock:
    def test_whole_content_without_range(self):
        assert extract_block("a\nb\n") == "a\nb\n"

    def test_inclusive_range(self):
        assert extract_block("a\nb\nc\nd", 2, 3) == "b\nc"

    def test_open_ended_range(self):
        assert extract_block("a\nb\nc", start_line=2) == "b\nc"
        assert extract_block("a\nb\nc", end_line=1) == "a"

    @pytest.mark.parametrize("start,end", [(0, 2), (3, 2), (4, 5), (4, None)])
    def test_invalid_range(self, start, end):
        with pytest.raises(ValueError):
            extract_block("a\nb\nc", start, end)


class TestBuildRecord:
    def test_record_shape(self):
        record = build_record(
            "src/auth/login.go",
            LOGIN_GO,
            "INT-001",
            model_id="test-model",
            session_id="S1",
            tool_name="write_to_file",
            related_specs=["SPEC-AUTH-1"],
            mutation_type=MutationType.NEW_FEATURE,
            revision_id=SHA,
        )
        data = record.to_dict()

        assert set(data) == {"id", "timestamp", "files", "revision_id", "metadata"}
        [file_trace] = data["files"]
        assert file_trace["relative_path"] == "src/auth/login.go"
        [conversation] = file_trace["conversations"]
        assert conversation["url"] == "S1"
        assert conversation["contributor"] == {"entity_type": "AI", "model_identifier": "test-model"}
        assert conversation["ranges"] == [
            {"start_line": 1, "end_line": 5, "content_hash": compute_content_hash(LOGIN_GO)}
        ]
        assert conversation["related"] == [
            {"type": "intent", "value": "INT-001"},
            {"type": "specification", "value": "SPEC-AUTH-1"},
        ]
        assert data["metadata"]["mutation_type"] == "new_feature"

    def test_end_line_clamped_to_content(self):
        record = build_record("a.py", "a\nb\nc", "INT-001", start_line=2, end_line=40)
        [line_range] = record.files[0].conversations[0].ranges
        assert (line_range.start_line, line_range.end_line) == (2, 3)
        assert line_range.content_hash == compute_content_hash("b\nc")

    def test_start_past_content_rejected(self):
        with pytest.raises(ValueError, match="starts past line 3"):
            build_record("a.py", "a\nb\nc", "INT-001", start_line=7)

    def test_duration_in_metadata(self):
        record = build_record("a.py", "x", "INT-001", duration_ms=12.34567)
        assert record.metadata["duration_ms"] == 12.346
        assert "duration_ms" not in build_record("a.py", "x", "INT-001").metadata

    def test_revision_omitted_when_unknown(self):
        assert "revision_id" not in build_record("a.py", "x", "INT-001").to_dict()

    def test_round_trip(self):
        record = build_record("a.py", "x\ny", "INT-001", related_specs=["S-1"])
        restored = TraceRecord.from_dict(json.loads(json.dumps(record.to_dict())))
        assert restored == record
        assert restored.related_values("specification") == ["S-1"]


class TestTraceLogger:
    """Tests for the post-tool trace hook."""

    def test_successful_write_traced(self, trace_logger, trace_path):
        record = trace_logger.log(_write_context())

        [line] = trace_path.read_text().splitlines()
        data = json.loads(line)
        assert data["id"] == record.id
        conversation = data["files"][0]["conversations"][0]
        assert conversation["related"][0] == {"type": "intent", "value": "INT-001"}
        assert {"type": "specification", "value": "SPEC-AUTH-1"} in conversation["related"]
        assert conversation["ranges"][0]["content_hash"] == compute_content_hash(LOGIN_GO)

    def test_appends_never_rewrite(self, trace_logger, trace_path):
        trace_logger.log(_write_context())
        first_line = trace_path.read_text().splitlines()[0]

        for n in range(3):
            trace_logger.log(_write_context(arguments={"path": f"src/auth/f{n}.go", "content": str(n)}))

        lines = trace_path.read_text().splitlines()
        assert len(lines) == 4
        assert lines[0] == first_line
        assert len({json.loads(line)["id"] for line in lines}) == 4

    @pytest.mark.parametrize(
        "overrides",
        [
            {"tool_name": "read_file"},
            {"tool_name": "execute_command", "arguments": {"command": "ls"}},
            {"success": False, "error": RuntimeError("disk full")},
            {"active_intent_id": None},
            {"arguments": {"content": "no path"}},
        ],
    )
    def test_untraced_calls(self, trace_logger, trace_path, overrides):
        assert trace_logger.log(_write_context(**overrides)) is None
        assert not trace_path.exists()

    def test_aborted_session_writes_nothing(self, trace_logger, trace_path):
        abort = threading.Event()
        abort.set()
        assert trace_logger.log(_write_context(abort_event=abort)) is None
        assert not trace_path.exists()

    def test_disabled_logger(self, trace_logger, trace_path):
        trace_logger.enabled = False
        assert trace_logger.log(_write_context()) is None
        assert not trace_path.exists()

    def test_partial_edit_hashes_file_on_disk(self, trace_logger, workspace):
        target = workspace / "src" / "auth" / "login.go"
        target.parent.mkdir(parents=True)
        target.write_text(LOGIN_GO)

        record = trace_logger.log(
            _write_context(
                tool_name="apply_diff",
                arguments={"path": "src/auth/login.go", "diff": "...", "start_line": 3, "end_line": 5},
            )
        )

        [line_range] = record.files[0].conversations[0].ranges
        assert (line_range.start_line, line_range.end_line) == (3, 5)
        assert line_range.content_hash == compute_content_hash("func Login() error {\n\treturn nil\n}")

    def test_range_past_end_of_file_not_traced(self, trace_logger, trace_path, workspace):
        target = workspace / "src" / "auth" / "login.go"
        target.parent.mkdir(parents=True)
        target.write_text(LOGIN_GO)

        record = trace_logger.log(
            _write_context(
                tool_name="apply_diff",
                arguments={"path": "src/auth/login.go", "diff": "...", "start_line": 40, "end_line": 42},
            )
        )

        assert record is None
        assert not trace_path.exists()

    def test_deleted_file_traced_as_deletion(self, trace_logger, trace_path):
        record = trace_logger.log(
            _write_context(
                tool_name="delete_file",
                arguments={"path": "src/auth/login.go"},
                previous_content=LOGIN_GO,
            )
        )

        assert record.metadata["mutation_type"] == "deletion"
        [line_range] = record.files[0].conversations[0].ranges
        assert (line_range.start_line, line_range.end_line) == (1, 5)
        assert line_range.content_hash == compute_content_hash(LOGIN_GO)
        assert len(trace_path.read_text().splitlines()) == 1

    def test_call_duration_recorded(self, trace_logger):
        finished = datetime.now(timezone.utc)
        record = trace_logger.log(
            _write_context(started_at=finished - timedelta(milliseconds=250), finished_at=finished)
        )
        assert record.metadata["duration_ms"] == 250.0

    def test_absolute_path_made_relative(self, trace_logger, workspace):
        path = str(workspace / "src" / "auth" / "jwt.go")
        record = trace_logger.log(_write_context(arguments={"path": path, "content": "x"}))
        assert record.files[0].relative_path == "src/auth/jwt.go"

    def test_declared_mutation_class_wins(self, trace_logger):
        record = trace_logger.log(
            _write_context(
                previous_content="",
                arguments={"path": "src/auth/a.go", "content": "x", "mutation_class": "bug_fix"},
            )
        )
        assert record.metadata["mutation_type"] == "bug_fix"

    def test_mutation_inferred_from_previous_content(self, trace_logger):
        record = trace_logger.log(_write_context(previous_content=""))
        assert record.metadata["mutation_type"] == "new_feature"

    @pytest.mark.asyncio
    async def test_async_call(self, trace_logger, trace_path):
        record = await trace_logger(_write_context())
        assert record is not None
        assert len(trace_path.read_text().splitlines()) == 1


class TestReadTraceLog:
    def test_filter_and_skip_invalid(self, trace_logger, trace_path):
        trace_logger.log(_write_context())
        with open(trace_path, "a") as f:
            f.write("not json\n\n")
        trace_logger.log(_write_context(active_intent_id="INT-002"))

        assert len(read_trace_log(trace_path)) == 2
        only_second = read_trace_log(trace_path, lambda r: "INT-002" in r.related_values("intent"))
        assert len(only_second) == 1

    def test_missing_file(self, tmp_path):
        assert read_trace_log(tmp_path / "none.jsonl") == []

    def test_summarize(self, trace_logger, trace_path):
        trace_logger.log(_write_context())
        trace_logger.log(_write_context(tool_name="edit_file"))
        trace_logger.log(_write_context(active_intent_id="INT-002"))

        summary = summarize_traces(read_trace_log(trace_path))

        assert summary["total_records"] == 3
        assert summary["by_intent"] == {"INT-001": 2, "INT-002": 1}
        assert summary["by_file"] == {"src/auth/login.go": 3}
        assert summary["by_contributor"] == {"test-model": 3}
        assert summary["by_tool"] == {"write_to_file": 2, "edit_file": 1}

    def test_summarize_average_duration(self):
        records = [
            build_record("a.py", "x", "INT-001", duration_ms=10.0),
            build_record("a.py", "y", "INT-001", duration_ms=30.0),
            build_record("a.py", "z", "INT-001"),
        ]
        assert summarize_traces(records)["average_duration_ms"] == 20.0
        assert summarize_traces([])["average_duration_ms"] is None


class TestClassifyMutation:
    @pytest.mark.parametrize(
        "old,new,expected",
        [
            (None, "x", MutationType.UNKNOWN),
            ("", "x", MutationType.NEW_FEATURE),
            ("a\nb", "", MutationType.DELETION),
            ("a\nb\nc\nd\ne", "a\nb\nC\nd\ne", MutationType.BUG_FIX),
            ("\n".join("abcdefghij"), "\n".join("abcdefghijklm"), MutationType.ENHANCEMENT),
            ("a\nb\nc\nd", "a\nb\nc\nd\ne\nf\ng", MutationType.REFACTOR),
            ("a\nb", "\n".join("klmnopqrst"), MutationType.NEW_FEATURE),
        ],
    )
    def test_heuristics(self, old, new, expected):
        assert classify_mutation(old, new) == expected

    def test_parse_declared_type(self):
        assert parse_mutation_type(" Refactor ") == MutationType.REFACTOR
        assert parse_mutation_type("rewrite") is None
        assert parse_mutation_type(None) is None


class TestRevision:
    """Tests for reading the workspace's git revision."""

    def test_branch_ref(self, tmp_path):
        git = tmp_path / ".git"
        (git / "refs" / "heads").mkdir(parents=True)
        (git / "HEAD").write_text("ref: refs/heads/main\n")
        (git / "refs" / "heads" / "main").write_text(SHA + "\n")
        assert get_revision_id(tmp_path) == SHA

    def test_packed_ref(self, tmp_path):
        git = tmp_path / ".git"
        git.mkdir()
        (git / "HEAD").write_text("ref: refs/heads/main\n")
        (git / "packed-refs").write_text(f"# pack-refs with: peeled\n{SHA} refs/heads/main\n")
        assert get_revision_id(tmp_path) == SHA

    def test_detached_head(self, tmp_path):
        git = tmp_path / ".git"
        git.mkdir()
        (git / "HEAD").write_text(SHA + "\n")
        assert get_revision_id(tmp_path) == SHA

    def test_worktree_pointer(self, tmp_path):
        real = tmp_path / "real-git-dir"
        real.mkdir()
        (real / "HEAD").write_text(SHA)
        workspace = tmp_path / "wt"
        workspace.mkdir()
        (workspace / ".git").write_text("gitdir: ../real-git-dir\n")
        assert get_revision_id(workspace) == SHA
