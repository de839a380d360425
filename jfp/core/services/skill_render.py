"""
Skill rendering — turn catalog entries into ``SKILL.md`` files.

Rendering is deterministic: the same entry always produces the same
bytes, which is what makes hash-based change detection meaningful.
Every artifact carries ``x_jfp_generated: true`` in its front matter so
``is_generated_by_tool`` can recognise it without a manifest lookup.
"""

from __future__ import annotations

import difflib
from typing import Any

import yaml

from jfp.core.models.catalog import Bundle, Catalog, CatalogEntry, Prompt

SITE_URL = "https://jeffreysprompts.com"


def _front_matter(fields: dict[str, Any]) -> str:
    """YAML front matter block, keys in insertion order."""
    body = yaml.safe_dump(
        fields,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=None,
        width=10_000,
    )
    return f"---\n{body}---\n\n"


def _bullets(items: list[str]) -> list[str]:
    return [f"- {item}" for item in items]


def render_prompt_skill(prompt: Prompt) -> str:
    """``SKILL.md`` content for a single prompt."""
    head = _front_matter({
        "name": prompt.id,
        "description": prompt.description,
        "version": prompt.version,
        "author": prompt.author,
        "category": prompt.category,
        "tags": list(prompt.tags),
        "source": f"{SITE_URL}/prompts/{prompt.id}",
        "x_jfp_generated": True,
    })

    lines = [f"# {prompt.title}", "", prompt.content, ""]

    for heading, items in (
        ("When to Use", prompt.when_to_use),
        ("Tips", prompt.tips),
        ("Examples", prompt.examples),
    ):
        if items:
            lines += [f"## {heading}", "", *_bullets(items), ""]

    lines += ["---", "", f"*From [JeffreysPrompts.com]({SITE_URL}/prompts/{prompt.id})*", ""]
    return head + "\n".join(lines)


def render_bundle_skill(bundle: Bundle, prompts: list[Prompt]) -> str:
    """One combined ``SKILL.md`` for a bundle and its member prompts."""
    head = _front_matter({
        "name": bundle.id,
        "description": bundle.description,
        "version": bundle.version,
        "author": bundle.author,
        "type": "bundle",
        "prompts": [p.id for p in prompts],
        "source": f"{SITE_URL}/bundles/{bundle.id}",
        "x_jfp_generated": True,
    })

    lines = [f"# {bundle.title}", "", bundle.description, ""]

    if bundle.workflow:
        lines += ["## Workflow", "", bundle.workflow, ""]

    if bundle.when_to_use:
        lines += ["## When to Use This Bundle", "", *_bullets(bundle.when_to_use), ""]

    lines += ["---", "", "## Included Prompts", ""]

    for prompt in prompts:
        lines += [f"### {prompt.title}", "", f"*{prompt.description}*", "", prompt.content, ""]
        if prompt.when_to_use:
            lines += ["**When to use:**", *_bullets(prompt.when_to_use), ""]
        if prompt.tips:
            lines += ["**Tips:**", *_bullets(prompt.tips), ""]
        lines += ["---", ""]

    lines += [f"*Bundle from [JeffreysPrompts.com]({SITE_URL}/bundles/{bundle.id})*", ""]
    return head + "\n".join(lines)


def render_entry(entry: CatalogEntry, catalog: Catalog) -> str:
    """Render any catalog entry; bundles pull members from ``catalog``."""
    if isinstance(entry, Bundle):
        return render_bundle_skill(entry, catalog.bundle_prompts(entry))
    return render_prompt_skill(entry)


def unified_diff(old: str, new: str, label: str) -> str:
    """Line-level diff for dry-run display (empty when identical)."""
    diff = difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile=f"{label} (installed)",
        tofile=f"{label} (registry)",
    )
    return "".join(diff)
