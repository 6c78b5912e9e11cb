"""User input cleaning shared by the services.

Anything that is not a string is rejected as a ValidationError naming
the field.
"""

import bleach

from tutorhub.errors import ValidationError


def clean_text(text, field="Text"):
    """Strip all HTML tags from user input. None passes through."""
    if text is None:
        return None
    if not isinstance(text, str):
        raise ValidationError(f"{field} must be a string.")
    return bleach.clean(text, tags=[], strip=True).strip()


def clean_list(values, field="Value"):
    """Clean a list of short strings, dropping the ones left empty."""
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list.")
    cleaned = (clean_text(str(v) if isinstance(v, (int, float)) else v, field) for v in values)
    return [v for v in cleaned if v]
