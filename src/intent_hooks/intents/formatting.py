"""Render intents as context blocks for the agent."""

from xml.sax.saxutils import escape

from .store import Intent

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(text: str) -> str:
    """Escape &, <, >, and both quote characters."""
    return escape(str(text), _XML_ENTITIES)


def _list_section(tag: str, item_tag: str, items: list[str]) -> list[str]:
    if not items:
        return [f"  <{tag} />"]
    lines = [f"  <{tag}>"]
    lines.extend(f"    <{item_tag}>{escape_xml(item)}</{item_tag}>" for item in items)
    lines.append(f"  </{tag}>")
    return lines


def format_as_context(intent: Intent) -> str:
    """
    Format an intent as an XML block for injection back to the agent.

    Example:
        <intent_context intent_id="INT-001" status="in_progress">
          <title>JWT authentication</title>
          <owned_scope>
            <pattern>src/auth/**</pattern>
          </owned_scope>
          ...
        </intent_context>
    """
    lines = [
        f'<intent_context intent_id="{escape_xml(intent.id)}" '
        f'status="{escape_xml(intent.status.value)}">',
        f"  <title>{escape_xml(intent.name)}</title>",
    ]
    if intent.context:
        lines.append(f"  <context>{escape_xml(intent.context)}</context>")

    lines.extend(_list_section("owned_scope", "pattern", intent.owned_scope))
    lines.extend(_list_section("constraints", "constraint", intent.constraints))
    lines.extend(
        _list_section("acceptance_criteria", "criterion", intent.acceptance_criteria)
    )
    if intent.dependencies:
        lines.extend(_list_section("dependencies", "intent", intent.dependencies))
    if intent.related_files:
        lines.extend(_list_section("related_files", "file", intent.related_files))
    if intent.blocked_reason:
        lines.append(f"  <blocked_reason>{escape_xml(intent.blocked_reason)}</blocked_reason>")

    lines.append("</intent_context>")
    return "\n".join(lines)


def format_selection_summary(intent: Intent) -> str:
    """Short human-readable confirmation shown after an intent is selected."""
    scope = ", ".join(intent.owned_scope) if intent.owned_scope else "none (writes will be blocked)"
    lines = [
        f'Intent "{intent.name or intent.id}" ({intent.id}) activated',
        f"Status: {intent.status.value}",
        f"Scope: {scope}",
    ]
    if intent.constraints:
        lines.append("Constraints:")
        lines.extend(f"  - {constraint}" for constraint in intent.constraints)
    if intent.acceptance_criteria:
        lines.append("Acceptance Criteria:")
        lines.extend(f"  - {criterion}" for criterion in intent.acceptance_criteria)
    return "\n".join(lines)
