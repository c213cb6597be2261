"""Model options.

Options can be given as keyword arguments, a mapping, or a YAML file:

```yaml
tol: 1.0e-12
variant: selective_linearize
max_chunk_size: 4
```
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from dsgeval.exceptions import ConfigError

VARIANTS: tuple[str, ...] = ("default", "selective_linearize", "linearize", "firstorder")


@dataclass
class Options:
    """Options controlling equation compilation and evaluation.

    Attributes:
        tol: Tolerance for "effectively zero" checks (steady-state slopes,
            residuals at the linearization point).
        variant: Which evaluation data the model uses.
        max_chunk_size: Upper bound on the forward-mode chunk size.
    """

    tol: float = 1e-12
    variant: str = "default"
    max_chunk_size: int = 4

    def __post_init__(self) -> None:
        self.tol = float(self.tol)
        self.max_chunk_size = int(self.max_chunk_size)
        if not self.tol >= 0.0:
            raise ConfigError(f"tol must be non-negative, got {self.tol}")
        if self.variant not in VARIANTS:
            raise ConfigError(
                f"Unknown variant '{self.variant}'. Supported: {', '.join(VARIANTS)}"
            )
        if self.max_chunk_size < 1:
            raise ConfigError(
                f"max_chunk_size must be >= 1, got {self.max_chunk_size}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Options:
        """Build options from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown option(s): {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Options:
        """Load options from a YAML file."""
        try:
            import yaml
        except ImportError as exc:
            raise ImportError(
                "PyYAML is required for YAML options. "
                "Install with: pip install pyyaml"
            ) from exc

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Options file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Options file must contain a mapping, got {type(data).__name__}")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def copy(self, **overrides: Any) -> Options:
        """Return a copy with some options replaced."""
        data = self.to_dict()
        data.update(overrides)
        return Options.from_dict(data)
