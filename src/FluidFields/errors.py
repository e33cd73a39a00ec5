"""Exceptions raised by distributed fields and their halo handles."""


class FieldError(Exception):
    """Base class for field layout and ownership errors."""


class ShapeMismatchError(FieldError, ValueError):
    """Operand or reference component shapes disagree, or a layout is degenerate."""


class ResourceOwnershipError(FieldError, RuntimeError):
    """An array is already bound to another live halo exchange handle."""


class HandleFreedError(FieldError, RuntimeError):
    """A halo exchange was requested after the handle was released."""
