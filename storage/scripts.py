"""
WebCompass Proxy - Script Library
In-memory catalog of named, reusable page scripts
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from concurrency.locks import LockManager, get_lock_manager
from core.errors import InvalidInput
from core.logger import log_info
from core.models import ScriptEntry


# Example scripts available on a fresh start. Each body is evaluated as the
# body of a function inside the page, so it must `return` its result.
DEFAULT_SCRIPTS: List[Dict[str, str]] = [
    {
        "name": "Extract Headers",
        "description": "Extract all heading elements from the page",
        "content": """// Extract all heading elements
function extractHeaders() {
  const headers = document.querySelectorAll('h1, h2, h3, h4, h5, h6');
  const result = [];

  headers.forEach(header => {
    result.push({
      tag: header.tagName,
      text: header.textContent.trim(),
      id: header.id || null,
      classes: header.className || null
    });
  });

  return result;
}

return extractHeaders();""",
    },
    {
        "name": "Form Filler",
        "description": "Auto-fill common form fields with test data",
        "content": """// Auto-fill form fields
function fillForm() {
  const emailInputs = document.querySelectorAll('input[type="email"], input[name*="email"]');
  const passwordInputs = document.querySelectorAll('input[type="password"], input[name*="password"]');
  const nameInputs = document.querySelectorAll('input[name*="name"], input[placeholder*="name"]');

  const fill = (inputs, value) => inputs.forEach(input => {
    input.value = value;
    input.dispatchEvent(new Event('input', { bubbles: true }));
  });

  fill(emailInputs, 'test@example.com');
  fill(passwordInputs, 'password123');
  fill(nameInputs, 'John Doe');

  return 'Form fields filled successfully';
}

return fillForm();""",
    },
    {
        "name": "Screenshot Elements",
        "description": "Highlight and capture specific page elements",
        "content": """// Highlight elements for screenshot
function highlightElements(selector = 'img, button, a') {
  const elements = document.querySelectorAll(selector);
  const highlights = [];

  elements.forEach((el, index) => {
    el.style.outline = '3px solid #ff0000';
    el.style.outlineOffset = '2px';

    highlights.push({
      index: index,
      tagName: el.tagName,
      text: el.textContent?.substring(0, 50) || '',
      src: el.src || null
    });
  });

  return {
    message: `Highlighted ${highlights.length} elements`,
    elements: highlights
  };
}

return highlightElements();""",
    },
]

UPDATABLE_FIELDS = ("name", "description", "content")


def _require_text(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"Script {field_name} must be a non-empty string")
    return value


class ScriptLibrary:
    """
    CRUD store for saved scripts.

    Script bodies are opaque: nothing checks that they execute. Ids are
    unique and increasing; deletes are idempotent.
    """

    def __init__(self, lock_manager: Optional[LockManager] = None, seed: bool = True):
        self._locks = lock_manager or get_lock_manager()
        self._scripts: Dict[int, ScriptEntry] = {}
        self._next_id = 1

        if seed:
            self._seed_default_scripts()

    def _seed_default_scripts(self) -> None:
        for script in DEFAULT_SCRIPTS:
            self.create(
                name=script["name"],
                content=script["content"],
                description=script["description"],
            )
        log_info(f"Script library seeded with {len(DEFAULT_SCRIPTS)} examples", prefix="📜")

    def list(self) -> List[ScriptEntry]:
        """Get all scripts, newest first."""
        with self._locks.acquire("scripts"):
            scripts = list(self._scripts.values())
        return sorted(scripts, key=lambda s: s.id, reverse=True)

    def get(self, script_id: int) -> Optional[ScriptEntry]:
        with self._locks.acquire("scripts"):
            return self._scripts.get(script_id)

    def create(self, name: str, content: str, description: Optional[str] = None) -> ScriptEntry:
        """
        Save a new script.

        Raises:
            InvalidInput: If name or content is empty
        """
        _require_text("name", name)
        _require_text("content", content)
        if description is not None and not isinstance(description, str):
            raise InvalidInput("Script description must be a string")

        with self._locks.acquire("scripts"):
            entry = ScriptEntry(
                id=self._next_id,
                name=name.strip(),
                description=description,
                content=content,
                created_at=datetime.now(timezone.utc),
            )
            self._scripts[entry.id] = entry
            self._next_id += 1
        return entry

    def update(self, script_id: int, fields: Dict[str, Any]) -> Optional[ScriptEntry]:
        """
        Merge the supplied fields into an existing script.

        Args:
            script_id: Script to update
            fields: Any of name, description, content

        Returns:
            The updated entry, or None if the id is unknown

        Raises:
            InvalidInput: On unknown fields or an empty name/content
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown script fields: {', '.join(sorted(unknown))}")
        fields = dict(fields)
        if "name" in fields:
            fields["name"] = _require_text("name", fields["name"]).strip()
        if "content" in fields:
            _require_text("content", fields["content"])
        if fields.get("description") is not None and not isinstance(fields["description"], str):
            raise InvalidInput("Script description must be a string")

        with self._locks.acquire("scripts"):
            existing = self._scripts.get(script_id)
            if existing is None:
                return None
            updated = replace(existing, **fields)
            self._scripts[script_id] = updated
        return updated

    def delete(self, script_id: int) -> None:
        """Delete a script. Unknown ids are ignored."""
        with self._locks.acquire("scripts"):
            self._scripts.pop(script_id, None)

    def __len__(self) -> int:
        with self._locks.acquire("scripts"):
            return len(self._scripts)
