"""
Immutable geometry records shared by the detection stages.
"""
from dataclasses import dataclass, field, replace
from typing import Tuple, Optional

from ..models.schema import PositionedToken, ColumnType


@dataclass(frozen=True)
class Line:
    """Tokens sharing a Y-band on one page, ordered left to right."""
    page: int
    tokens: Tuple[PositionedToken, ...]

    @property
    def text(self) -> str:
        return ' '.join(token.text for token in self.tokens)

    @property
    def top(self) -> float:
        return min(token.top for token in self.tokens)

    @property
    def bottom(self) -> float:
        return max(token.bottom for token in self.tokens)

    @property
    def left(self) -> float:
        return min(token.x0 for token in self.tokens)

    @property
    def right(self) -> float:
        return max(token.x1 for token in self.tokens)

    @property
    def is_bold(self) -> bool:
        return bool(self.tokens) and all(token.bold for token in self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __repr__(self):
        return f"Line(page={self.page}, top={self.top:.1f}, text='{self.text}')"


@dataclass(frozen=True)
class ColumnBoundary:
    """An x-range with its inferred semantic type."""
    x0: float
    x1: float
    column_type: ColumnType = ColumnType.UNKNOWN
    confidence: float = 0.0

    @property
    def center_x(self) -> float:
        return (self.x0 + self.x1) / 2

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    def contains(self, token: PositionedToken) -> bool:
        """Strict containment: the token's center lies inside [x0, x1]."""
        return self.x0 <= token.center_x <= self.x1

    def retyped(self, column_type: ColumnType, confidence: float) -> 'ColumnBoundary':
        return replace(self, column_type=column_type, confidence=confidence)

    def __repr__(self):
        return (f"ColumnBoundary({self.column_type.value}, x0={self.x0:.1f}, "
                f"x1={self.x1:.1f}, confidence={self.confidence:.2f})")


@dataclass(frozen=True)
class TableRegion:
    """
    A run of lines with consistent column cardinality.

    ``lines`` are the cardinality-consistent lines that drive column geometry;
    ``span`` is every line the region covers in document order, which is what
    rows are extracted from.
    """
    lines: Tuple[Line, ...]
    span: Tuple[Line, ...]
    boundaries: Tuple[ColumnBoundary, ...] = field(default=())
    header: Optional[Line] = None

    @property
    def pages(self) -> Tuple[int, ...]:
        return tuple(sorted({line.page for line in self.span}))

    @property
    def average_token_count(self) -> float:
        if not self.lines:
            return 0.0
        return sum(len(line) for line in self.lines) / len(self.lines)

    def column_types(self) -> Tuple[ColumnType, ...]:
        return tuple(boundary.column_type for boundary in self.boundaries)

    def has_column(self, column_type: ColumnType) -> bool:
        return column_type in self.column_types()

    def with_boundaries(self, boundaries) -> 'TableRegion':
        return replace(self, boundaries=tuple(boundaries))

    def __repr__(self):
        return (f"TableRegion(pages={self.pages}, lines={len(self.lines)}, "
                f"span={len(self.span)}, columns={len(self.boundaries)})")
