"""Category names with special meaning to the stats code."""

UNCATEGORIZED = "Uncategorized"

# Credits filed under this category are money paid back to the user,
# not income.
REIMBURSEMENT = "reimbursement"

DEFAULT_COLOR = "#6b7280"
DEFAULT_ICON = "lucide:folder"


def is_reimbursement(category) -> bool:
    """Category names are user input, so compare without case or padding."""
    return bool(category) and str(category).strip().lower() == REIMBURSEMENT
