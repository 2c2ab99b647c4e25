# asset_agent/core/errors.py
"""
Error taxonomy of the asset agent.

Every error carries a stable ``code`` (sent on the wire where a code is
expected) and a human readable ``message``. Handlers catch ``AssetError``
once at their outer boundary and turn it into a single reply.
"""
from typing import Optional


# -------------------------------------------------------
# Wire-level codes
# -------------------------------------------------------
BAD_COMMAND = "BAD_COMMAND"
OPERATION_NOT_IMPLEMENTED = "OPERATION_NOT_IMPLEMENTED"
MISSING_INAME = "MISSING_INAME"
MISSING_COMMAND = "MISSING_COMMAND"
ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
REQUEST_MSGTYPE_EXPECTED = "REQUEST_MSGTYPE_EXPECTED"
UNEXPECTED_COMMAND = "UNEXPECTED_COMMAND"
INTERNAL_ERROR = "INTERNAL_ERROR"

LICENSING_PROHIBITED = "Licensing limitation hit - asset manipulation is prohibited."
LICENSING_MAX_ACTIVE = (
    "Licensing limitation hit - maximum amount of active power devices allowed in license reached."
)


class AssetError(Exception):
    code = "InternalError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class BadParams(AssetError):
    """A field failed validation (regex, range, type)."""

    code = "BadParams"

    def __init__(self, field: str, value: str = "", reason: str = "") -> None:
        self.field = field
        self.value = value
        super().__init__(reason or f"Parameter '{field}' has bad value. Received '{value}'")


class ParamRequired(AssetError):
    code = "ParamRequired"

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Parameter '{field}' is required")


class BadRequestDocument(AssetError):
    code = "BadRequestDocument"

    def __init__(self, document: str, reason: str = "") -> None:
        self.document = document
        message = f"Request document has invalid syntax: {document}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ElementNotFound(AssetError):
    code = "ElementNotFound"

    def __init__(self, element: str, message: Optional[str] = None) -> None:
        self.element = element
        super().__init__(message or f"Element '{element}' not found.")


class ExceptionForElement(AssetError):
    """Internal failure while processing one named element."""

    code = "ExceptionForElement"

    def __init__(self, element: str, message: str) -> None:
        self.element = element
        super().__init__(message)


class InternalError(AssetError):
    code = "InternalError"

    def __init__(self, message: str = "Internal error") -> None:
        super().__init__(message)


class LicensingError(AssetError):
    code = "LicensingError"


class ActivationError(AssetError):
    code = "ActivationError"


class BusError(AssetError):
    code = "BusError"
