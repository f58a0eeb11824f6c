"""
Activity: Prompt — turns a change request into instructions for the agent.
"""

from __future__ import annotations

from models.schemas import ElementDescriptor

COMMIT_MARKER = "COMMIT_HASH:"

# (computed style key, label), rendered in this order when present
STYLE_FIELDS = [
    ("width", "Width"),
    ("height", "Height"),
    ("backgroundColor", "Background"),
    ("color", "Text Color"),
    ("fontSize", "Font Size"),
    ("display", "Display"),
    ("position", "Position"),
]

CLOSING_INSTRUCTIONS = [
    "## Instructions",
    "1. Use Language Server Protocol (LSP) features to navigate the codebase efficiently:",
    '   - Use "Go to Definition" to find where components/elements are defined',
    '   - Use "Find References" to locate all usages',
    "   - Use symbol search to quickly find relevant files",
    "2. Find the source file containing this element using the selector, classes, and DOM path as hints",
    "3. Make the requested change",
    "4. Commit the change with a descriptive message",
    "5. Push to the remote repository",
    "6. **IMPORTANT**: After pushing, output the commit hash in this exact format:",
    f"   {COMMIT_MARKER} <full-40-character-hash>",
    "   This is required for tracking purposes.",
]


def build_prompt(
    feedback: str,
    element: ElementDescriptor,
    page_url: str | None = None,
    memory_context: str | None = None,
) -> str:
    """Compose the agent prompt. Pure and deterministic."""
    lines = [
        "# Visual Feedback Request",
        "",
        "## User Feedback",
        f'"{feedback}"',
        "",
        "## Target Element",
        f"- **Tag:** <{element.tag}>",
        f"- **Selector:** {element.selector or 'N/A'}",
    ]
    if element.id:
        lines.append(f"- **ID:** #{element.id}")
    if element.classes:
        lines.append(f"- **Classes:** .{', .'.join(element.classes)}")
    if element.path:
        crumbs = " > ".join(p.selector or p.tag for p in element.path)
        lines.append(f"- **DOM Path:** {crumbs}")

    styles = [
        f"- {label}: {element.computed_styles[key]}"
        for key, label in STYLE_FIELDS
        if element.computed_styles.get(key)
    ]
    if styles:
        lines += ["", "## Current Styles", *styles]

    if page_url:
        lines += ["", "## Page URL", page_url]

    if memory_context:
        lines += ["", memory_context]

    lines += ["", *CLOSING_INSTRUCTIONS]
    return "\n".join(lines)
