"""
Generate Mermaid diagrams from the booking state model.

Usage:
    python scripts/generate_state_diagrams.py                 # print to stdout
    python scripts/generate_state_diagrams.py --update-docs   # rewrite docs/STATE_DIAGRAMS.md
    python scripts/generate_state_diagrams.py --check         # fail if the docs are stale (CI)
"""
import argparse
import sys
from pathlib import Path
from typing import Any

# add the repo root so the app package imports without installation
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.state_machine.booking_states import (
    BookingState,
    BOOKING_TRANSITIONS,
    INITIAL_STATE,
    TERMINAL_STATES,
    describe_state,
)
from app.state_machine.state_mapping import LegacyBookingState, to_canonical, to_legacy

DOCS_PATH = Path(__file__).resolve().parent.parent / "docs" / "STATE_DIAGRAMS.md"

START_MARKER = "<!-- STATE_DIAGRAMS_START -->"
END_MARKER = "<!-- STATE_DIAGRAMS_END -->"

BOOKING_LABELS: dict[str, str] = {state.value: describe_state(state) for state in BookingState}

# transitions guarded by something beyond the graph
EDGE_NOTES: dict[tuple[BookingState, BookingState], str] = {
    (BookingState.CREATED, BookingState.ASSIGNED): "partner provided",
    (BookingState.ACCEPTED, BookingState.IN_PROGRESS): "OTP handshake verified",
    (BookingState.IN_PROGRESS, BookingState.COMPLETED): "final payment verified / ledger",
}


def _sanitize_id(state_value: str) -> str:
    """Mermaid ids may not contain dots or dashes"""
    return state_value.replace(".", "_").replace("-", "_")


def generate_mermaid_from_transitions(
    transitions: dict[Any, list[Any]],
    labels: dict[str, str],
    initial: Any = None,
    terminal: frozenset = frozenset(),
    edge_notes: dict | None = None,
) -> str:
    """Render a {state: [targets]} mapping as a stateDiagram-v2."""
    edge_notes = edge_notes or {}
    lines: list[str] = ["stateDiagram-v2"]

    all_states: set[str] = set()
    for source, targets in transitions.items():
        all_states.add(source.value)
        for target in targets:
            all_states.add(target.value)

    for state_value in sorted(all_states):
        lines.append(f"    {_sanitize_id(state_value)} : {labels.get(state_value, state_value)}")

    lines.append("")

    if initial is not None:
        lines.append(f"    [*] --> {_sanitize_id(initial.value)}")

    for source, targets in transitions.items():
        source_id = _sanitize_id(source.value)
        for target in targets:
            note = edge_notes.get((source, target))
            suffix = f" : {note}" if note else ""
            lines.append(f"    {source_id} --> {_sanitize_id(target.value)}{suffix}")

    for state in sorted(terminal, key=lambda s: s.value):
        lines.append(f"    {_sanitize_id(state.value)} --> [*]")

    return "\n".join(lines)


def generate_booking_diagram() -> str:
    return generate_mermaid_from_transitions(
        BOOKING_TRANSITIONS,
        BOOKING_LABELS,
        initial=INITIAL_STATE,
        terminal=TERMINAL_STATES,
        edge_notes=EDGE_NOTES,
    )


def generate_mapping_diagram() -> str:
    """Persisted (legacy) values and the canonical state each reads back as"""
    lines = ["flowchart LR"]
    for state in BookingState:
        legacy = to_legacy(state)
        readback = to_canonical(legacy)
        arrow = "-->" if readback == state else "-.->|lossy|"
        lines.append(f"    canonical_{state.value}[{state.value}] {arrow} legacy_{legacy}({legacy})")
    for legacy_state in LegacyBookingState:
        canonical = to_canonical(legacy_state.value)
        lines.append(
            f"    legacy_{legacy_state.value} -. reads as .-> canonical_{canonical.value}"
        )
    return "\n".join(lines)


def generate_all_diagrams() -> dict[str, str]:
    return {
        "Booking lifecycle (BookingState)": generate_booking_diagram(),
        "Persisted status mapping": generate_mapping_diagram(),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = []
    for name, mermaid_code in diagrams.items():
        sections.append(f"#### {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def render_section(markdown_content: str) -> str:
    return f"{START_MARKER}\n\n{markdown_content}\n{END_MARKER}"


def update_docs(markdown_content: str, path: Path = DOCS_PATH) -> None:
    """Write the diagrams between the markers, creating the file if needed."""
    new_section = render_section(markdown_content)

    if path.exists():
        content = path.read_text(encoding="utf-8")
    else:
        content = "# State diagrams\n\nGenerated by scripts/generate_state_diagrams.py.\n"

    if START_MARKER in content and END_MARKER in content:
        start = content.index(START_MARKER)
        end = content.index(END_MARKER) + len(END_MARKER)
        content = content[:start] + new_section + content[end:]
    else:
        content = content.rstrip("\n") + "\n\n" + new_section + "\n"

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    print(f"Updated: {path}")


def check_docs(markdown_content: str, path: Path = DOCS_PATH) -> bool:
    """True when the diagrams in the docs match the code."""
    if not path.exists():
        print(f"Error: {path} not found")
        return False

    content = path.read_text(encoding="utf-8")
    if START_MARKER not in content or END_MARKER not in content:
        print(f"Error: diagram markers not found in {path}")
        return False

    start = content.index(START_MARKER)
    end = content.index(END_MARKER) + len(END_MARKER)
    if content[start:end] == render_section(markdown_content):
        print("Diagrams are in sync with the code")
        return True

    print("Error: diagrams are out of date")
    print("Run: python scripts/generate_state_diagrams.py --update-docs")
    return False


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate Mermaid diagrams from the booking state model"
    )
    parser.add_argument(
        "--update-docs",
        action="store_true",
        help="rewrite docs/STATE_DIAGRAMS.md with the current diagrams",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="exit non-zero if docs/STATE_DIAGRAMS.md is out of date (for CI)",
    )
    args = parser.parse_args()

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        sys.exit(0 if check_docs(markdown) else 1)
    elif args.update_docs:
        update_docs(markdown)
    else:
        print(markdown)


if __name__ == "__main__":
    main()
