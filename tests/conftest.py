"""
Shared pytest fixtures for obsidian-tools tests.

Every test runs with its state directory and user config redirected into
tmp_path, so nothing touches ~/.obsidian-tools or the real vault.
"""

from pathlib import Path

import pytest
import yaml


SETTINGS = """\
spec_version: "0.1"
settings:
  types_folder: _types
  default_validation: error
  include_subfolders: true
"""

FLEETING_TYPE = """\
---
name: fleeting
path_pattern: inbox/{id}.md
match:
  fields_present: [captured]
fields:
  id:
    type: string
    required: true
  status:
    type: enum
    values: [unprocessed, processed]
    default: unprocessed
  captured:
    type: datetime
    required: true
---

Quick thoughts captured for later processing.
"""

TASK_TYPE = """\
---
name: task
fields:
  title:
    type: string
    required: true
  status:
    type: enum
    values: [open, in_progress, done, cancelled]
    default: open
  priority:
    type: integer
  tags:
    type: list
---
"""

NOTE_TYPE = """\
---
name: note
fields:
  title:
    type: string
    required: true
---
"""


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point the state directory and user config into tmp_path."""
    monkeypatch.setenv("OBSIDIAN_TOOLS_HOME", str(tmp_path / "state"))
    monkeypatch.setenv("OBSIDIAN_TOOLS_CONFIG", str(tmp_path / "config.toml"))
    monkeypatch.delenv("VAULT_PATH", raising=False)
    monkeypatch.delenv("OBSIDIAN_TOOLS_VERBOSE", raising=False)


@pytest.fixture
def vault(tmp_path) -> Path:
    """An empty vault with task, note and fleeting type definitions."""
    root = tmp_path / "vault"
    types_dir = root / "_types"
    types_dir.mkdir(parents=True)
    (root / "mdbase.yaml").write_text(SETTINGS, encoding="utf-8")
    (types_dir / "fleeting.md").write_text(FLEETING_TYPE, encoding="utf-8")
    (types_dir / "task.md").write_text(TASK_TYPE, encoding="utf-8")
    (types_dir / "note.md").write_text(NOTE_TYPE, encoding="utf-8")
    return root


@pytest.fixture
def write_doc(vault):
    """Write a markdown document into the vault."""
    def _write(rel: str, frontmatter=None, body: str = "") -> Path:
        path = vault / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        text = ""
        if frontmatter is not None:
            text = "---\n" + yaml.safe_dump(frontmatter, sort_keys=False) + "---\n"
        path.write_text(text + body, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def sample_vault(vault, write_doc) -> Path:
    """
    A small populated vault:
      3 tasks (one done), 1 note under projects/alpha,
      1 unprocessed fleeting note, 1 file without frontmatter.
    """
    write_doc("tasks/fix-login.md", {
        "type": "task", "title": "Fix login", "status": "open",
        "priority": 2, "tags": ["auth"],
    })
    write_doc("tasks/write-docs.md", {
        "type": "task", "title": "Write docs", "status": "in_progress", "priority": 1,
    })
    write_doc("tasks/ship-it.md", {
        "type": "task", "title": "Ship it", "status": "done", "priority": 1,
    })
    write_doc("projects/alpha/plan.md", {"type": "note", "title": "Alpha plan"},
              "Plan body\nsecond line\n")
    write_doc("inbox/01HZX3ABCDEFGHJKMNPQRSTVWX.md", {
        "id": "01HZX3ABCDEFGHJKMNPQRSTVWX",
        "status": "unprocessed",
        "captured": "2026-01-15T09:00:00.000Z",
    }, "Old thought\n")
    write_doc("loose.md", body="Just text\n")
    return vault
