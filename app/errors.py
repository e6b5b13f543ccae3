class LedgerError(Exception):
    """Base class for bookkeeping failures that must reach the router."""


class CategoryIntegrityError(LedgerError):
    """The fallback category for a direction is missing from the category table."""

    def __init__(self, direction: str, name: str):
        super().__init__(f"Default {direction} category '{name}' is missing")
        self.direction = direction
        self.name = name


class DuplicateFixedExpenseError(LedgerError):
    """A fixed expense with the same description already exists for the user."""

    def __init__(self, description: str):
        super().__init__(f"Fixed expense '{description}' already exists")
        self.description = description
