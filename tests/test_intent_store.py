"""Tests for the YAML intent store and context rendering."""

import pytest

from intent_hooks.intents import (
    Intent,
    IntentStatus,
    IntentStore,
    find_dependency_cycle,
    format_as_context,
    load_intents,
    parse_intents,
)
from intent_hooks.intents.store import IntentDocumentError, intent_from_dict, parse_status


class TestParseIntents:
    """Tests for parsing the intent document."""

    def test_mapping_root_with_active_intents_key(self, intents_path):
        intents = load_intents(intents_path)
        assert [i.id for i in intents] == ["INT-001", "INT-002"]
        assert intents[0].owned_scope == ["src/auth/**"]
        assert intents[0].status == IntentStatus.IN_PROGRESS
        assert intents[0].related_specs == ["SPEC-AUTH-1"]
        assert intents[1].dependencies == ["INT-001"]

    def test_list_root(self):
        intents = parse_intents("- id: A\n  status: done\n- id: B\n")
        assert [i.id for i in intents] == ["A", "B"]
        assert intents[0].status == IntentStatus.DONE
        assert intents[1].status == IntentStatus.DRAFT

    def test_intents_key(self):
        intents = parse_intents("intents:\n  - id: A\n    title: Alpha\n")
        assert intents[0].name == "Alpha"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("pending", IntentStatus.DRAFT),
            ("active", IntentStatus.IN_PROGRESS),
            ("IN-PROGRESS", IntentStatus.IN_PROGRESS),
            ("completed", IntentStatus.DONE),
            ("Blocked", IntentStatus.BLOCKED),
        ],
    )
    def test_status_aliases(self, raw, expected):
        assert parse_status(raw) == expected

    def test_unknown_status_rejected(self):
        with pytest.raises(IntentDocumentError, match="unknown status"):
            parse_status("someday")

    def test_blocked_reason_only_kept_for_blocked_intents(self):
        blocked = intent_from_dict({"id": "A", "status": "blocked", "blocked_reason": "waiting"})
        active = intent_from_dict({"id": "B", "status": "draft", "blocked_reason": "stale"})
        assert blocked.blocked_reason == "waiting"
        assert blocked.is_blocked is True
        assert active.blocked_reason is None

    def test_invalid_record_skipped(self):
        diagnostics = []
        intents = parse_intents(
            "- id: A\n- name: missing id\n- id: C\n  owned_scope: 5\n- id: D\n",
            diagnostics,
        )
        assert [i.id for i in intents] == ["A", "D"]
        assert len(diagnostics) == 2

    def test_duplicate_id_keeps_first(self):
        intents = parse_intents("- id: A\n  name: first\n- id: A\n  name: second\n")
        assert len(intents) == 1
        assert intents[0].name == "first"

    def test_malformed_yaml_yields_no_intents(self):
        diagnostics = []
        assert parse_intents("intents: [unclosed", diagnostics) == []
        assert diagnostics and "YAML" in diagnostics[0]

    def test_wrong_shape_yields_no_intents(self):
        assert parse_intents("intents: not-a-list") == []
        assert parse_intents("something_else: []") == []

    def test_empty_document(self):
        assert parse_intents("") == []

    def test_missing_file_yields_no_intents(self, tmp_path):
        diagnostics = []
        assert load_intents(tmp_path / "absent.yaml", diagnostics) == []
        assert "not found" in diagnostics[0]

    def test_dependency_cycle_rejected(self):
        diagnostics = []
        text = "- id: A\n  dependencies: [B]\n- id: B\n  dependencies: [A]\n"
        assert parse_intents(text, diagnostics) == []
        assert any("circular dependency" in d for d in diagnostics)

    def test_unknown_dependency_warns_but_loads(self):
        diagnostics = []
        intents = parse_intents("- id: A\n  dependencies: [GHOST]\n", diagnostics)
        assert [i.id for i in intents] == ["A"]
        assert "GHOST" in diagnostics[0]


class TestFindDependencyCycle:
    def test_acyclic(self):
        intents = [Intent(id="A", dependencies=["B"]), Intent(id="B")]
        assert find_dependency_cycle(intents) is None

    def test_self_dependency(self):
        assert find_dependency_cycle([Intent(id="A", dependencies=["A"])]) == ["A", "A"]

    def test_longer_cycle(self):
        intents = [
            Intent(id="A", dependencies=["B"]),
            Intent(id="B", dependencies=["C"]),
            Intent(id="C", dependencies=["A"]),
        ]
        assert find_dependency_cycle(intents) == ["A", "B", "C", "A"]


class TestIntentStore:
    """Tests for IntentStore."""

    def test_find_by_id(self, intents_path):
        store = IntentStore(intents_path)
        assert store.find_by_id("INT-001").name == "JWT authentication"
        assert store.find_by_id("INT-999") is None

    def test_available_ids(self, intents_path):
        assert IntentStore(intents_path).available_ids() == ["INT-001", "INT-002"]

    def test_rereads_document_on_every_access(self, intents_path, rewrite_intents):
        store = IntentStore(intents_path)
        assert store.find_by_id("INT-003") is None

        rewrite_intents("- id: INT-003\n  status: blocked\n  blocked_reason: waiting on API\n")

        intent = store.find_by_id("INT-003")
        assert intent is not None
        assert intent.is_blocked
        assert store.available_ids() == ["INT-003"]

    def test_diagnostics_reset_per_load(self, intents_path, rewrite_intents):
        store = IntentStore(intents_path)
        rewrite_intents("intents: [")
        store.load()
        assert store.diagnostics

        rewrite_intents("- id: A\n")
        store.load()
        assert store.diagnostics == []


class TestFormatAsContext:
    """Tests for the <intent_context> rendering."""

    def test_renders_scope_constraints_and_criteria(self, intents_path):
        intent = IntentStore(intents_path).find_by_id("INT-001")
        block = format_as_context(intent)

        assert block.startswith('<intent_context intent_id="INT-001" status="in_progress">')
        assert "<title>JWT authentication</title>" in block
        assert "<pattern>src/auth/**</pattern>" in block
        assert "<constraint>Must not use external auth providers</constraint>" in block
        assert "<criterion>Unit tests in tests/auth/ pass</criterion>" in block
        assert block.endswith("</intent_context>")

    def test_escapes_xml(self):
        intent = Intent(
            id='X"1',
            name="a < b & c",
            owned_scope=["src/<gen>/**"],
            constraints=["don't"],
        )
        block = format_as_context(intent)

        assert 'intent_id="X&quot;1"' in block
        assert "<title>a &lt; b &amp; c</title>" in block
        assert "<pattern>src/&lt;gen&gt;/**</pattern>" in block
        assert "don&apos;t" in block

    def test_empty_scope_rendered_as_empty_element(self):
        assert "<owned_scope />" in format_as_context(Intent(id="A"))
