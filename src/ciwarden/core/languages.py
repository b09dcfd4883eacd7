"""Language inference from affected file paths."""

from collections.abc import Iterable
from enum import Enum


class Language(str, Enum):
    """Ecosystems the suggestion table and fixers know about."""

    PYTHON = "python"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    GO = "go"
    RUST = "rust"
    UNKNOWN = "unknown"

    @property
    def is_node(self) -> bool:
        return self in (Language.TYPESCRIPT, Language.JAVASCRIPT)


PYTHON_SUFFIXES = (".py", ".pyi")
TYPESCRIPT_SUFFIXES = (".ts", ".tsx")
JAVASCRIPT_SUFFIXES = (".js", ".jsx", ".mjs", ".cjs")
NODE_MANIFESTS = ("package.json", "package-lock.json")
GO_SUFFIXES = (".go",)
RUST_SUFFIXES = (".rs",)


def infer_language(files: Iterable[str]) -> Language:
    """Pick one language for a set of files.

    Precedence when several ecosystems are present:
    Python > Node (TypeScript over JavaScript) > Go > Rust.
    """
    paths = list(files)
    if any(p.endswith(PYTHON_SUFFIXES) for p in paths):
        return Language.PYTHON
    if any(p.endswith(TYPESCRIPT_SUFFIXES) for p in paths):
        return Language.TYPESCRIPT
    if any(p.endswith(JAVASCRIPT_SUFFIXES + NODE_MANIFESTS) for p in paths):
        return Language.JAVASCRIPT
    if any(p.endswith(GO_SUFFIXES) for p in paths):
        return Language.GO
    if any(p.endswith(RUST_SUFFIXES) for p in paths):
        return Language.RUST
    return Language.UNKNOWN
