"""Action model: a named prompt template applied to user-supplied text."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


SHARING_SEPARATOR = "✂️"

# Order matters: it is the order parts appear in a sharing string
SHARING_PREFIXES = {
    "name": "Name: ",
    "system": "System: ",
    "prompt": "Prompt: ",
    "replace_selection": "Replace: ",
    "model": "Model: ",
}


class Creativity(str, Enum):
    """Default sampling creativity applied to actions without a temperature."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def temperature(self) -> Optional[float]:
        """Sampling temperature for this level (None leaves the server default)."""
        return _CREATIVITY_TEMPERATURES[self]


_CREATIVITY_TEMPERATURES = {
    Creativity.NONE: None,
    Creativity.LOW: 0.2,
    Creativity.MEDIUM: 0.5,
    Creativity.HIGH: 1.0,
}


class Action(BaseModel):
    """A saved, named prompt template.

    The core treats `prompt` and `system` as already-resolved strings; any
    template substitution happens before an action reaches a provider.
    """

    name: str = Field(
        ...,
        min_length=1,
        description="Unique action name (uniqueness enforced by Config)"
    )

    prompt: str = Field(
        default="",
        description="Instruction placed before the input text in the user message"
    )

    system: str = Field(
        default="",
        description="Optional system prompt"
    )

    model: str = Field(
        default="",
        description="Model override; empty means the provider's default model"
    )

    temperature: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature; unset means the creativity default"
    )

    replace_selection: bool = Field(
        default=False,
        description="Whether the host should replace the selected text with the result"
    )

    model_config = {"frozen": True}

    def to_sharing_string(self) -> str:
        """
        Render the action as a copy-pasteable sharing string.

        Parts are separated by " ✂️\\n" and only non-empty fields are included.

        Example:
            >>> Action(name="Summarize", prompt="Summarize this").to_sharing_string()
            'Name: Summarize ✂️\\nPrompt: Summarize this'
        """
        values = {
            "name": self.name,
            "system": self.system,
            "prompt": self.prompt,
            "replace_selection": "true" if self.replace_selection else "",
            "model": self.model,
        }
        parts = [
            f"{SHARING_PREFIXES[key]}{value}"
            for key, value in values.items()
            if value
        ]
        return f" {SHARING_SEPARATOR}\n".join(parts)

    @classmethod
    def from_sharing_string(cls, value: str) -> "Action":
        """
        Parse a sharing string produced by to_sharing_string().

        Unknown parts are ignored. "Replace: " is true for "true"/"yes"/"1".

        Args:
            value: Sharing string

        Returns:
            Parsed Action

        Raises:
            ValueError: If the string carries no action name
        """
        fields: dict[str, object] = {}
        for part in value.split(SHARING_SEPARATOR):
            part = part.strip()
            for key, prefix in SHARING_PREFIXES.items():
                if part.startswith(prefix):
                    fields[key] = part[len(prefix):]
                    break

        if not fields.get("name"):
            raise ValueError("Sharing string has no 'Name: ' part")

        if "replace_selection" in fields:
            flag = str(fields["replace_selection"]).strip().lower()
            fields["replace_selection"] = flag in ("true", "yes", "1")

        return cls(**fields)


DEFAULT_ACTIONS: list[Action] = [
    Action(
        name="🪄 General help",
        prompt="",
        system="You are a helpful assistant.",
    ),
    Action(
        name="✍️ Continue writing",
        prompt="Act as a professional editor with many years of experience "
        "as a writer. Carefully finalize the following text, add details, "
        "use facts and make sure that the meaning and original style are "
        "preserved. Purposely write in detail, with examples. Output only "
        "the continuation.",
        system="You are a helpful assistant.",
    ),
    Action(
        name="🍭 Summarize",
        prompt="Make a concise summary of the key points of the following text.",
        system="You are a helpful assistant.",
    ),
    Action(
        name="📖 Fix spelling and grammar",
        prompt="Proofread the below for spelling and grammar. Output only "
        "the corrected text.",
        system="You are a helpful assistant.",
        replace_selection=True,
    ),
    Action(
        name="✅ Find action items",
        prompt="Act as an assistant helping find action items inside a "
        "document. An action item is an extracted task or to-do found "
        "inside of an unstructured document. Use Markdown checkbox format: "
        "each line starts with \"- [ ] \"",
        system="You are a helpful assistant.",
    ),
]
