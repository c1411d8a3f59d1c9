"""Category catalog models for transaction categorization."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from models.transaction import UNCATEGORIZED

UNCATEGORIZED_ID = "uncategorized"


@dataclass
class Subcategory:
    id: str
    name: str


@dataclass
class Category:
    """Represents a user-defined transaction category.

    Attributes:
        id: Stable identifier the oracle is asked to answer with.
        name: Display name stored on transactions.
        type: 'income', 'expense' or 'transfer'.
        subcategories: Child categories.
    """

    id: str
    name: str
    type: str = "expense"
    subcategories: List[Subcategory] = field(default_factory=list)


class CategoryCatalog:
    """The caller's category catalog, used to validate oracle answers.

    Oracle answers are ids, but models sometimes echo a display name instead,
    so both are accepted (names case-insensitively).
    """

    def __init__(self, categories: List[Category]):
        self.categories = list(categories)
        self._by_id = {c.id: c for c in self.categories}
        self._by_name = {c.name.lower(): c for c in self.categories}

    def __iter__(self):
        return iter(self.categories)

    def __len__(self):
        return len(self.categories)

    def find(self, ref: Optional[str]) -> Optional[Category]:
        """Find a category by id, falling back to a case-insensitive name match."""
        if not ref:
            return None
        ref = str(ref)
        return self._by_id.get(ref) or self._by_name.get(ref.lower())

    def normalize(
        self, category_id: Optional[str], subcategory_id: Optional[str]
    ) -> Tuple[str, Optional[str]]:
        """Validate an oracle answer against the catalog.

        Returns:
            (category_id, subcategory_id). Unknown categories become
            'uncategorized'; a subcategory that does not belong to the chosen
            category is dropped.
        """
        category = self.find(category_id)
        if category is None:
            return UNCATEGORIZED_ID, None

        if not subcategory_id:
            return category.id, None

        ref = str(subcategory_id)
        for sub in category.subcategories:
            if sub.id == ref or sub.name.lower() == ref.lower():
                return category.id, sub.id
        return category.id, None

    def display_names(
        self, category_id: str, subcategory_id: Optional[str]
    ) -> Tuple[str, Optional[str]]:
        """Map normalized ids to the names stored on transactions."""
        category = self._by_id.get(category_id)
        if category is None:
            return UNCATEGORIZED, None
        for sub in category.subcategories:
            if sub.id == subcategory_id:
                return category.name, sub.name
        return category.name, None
