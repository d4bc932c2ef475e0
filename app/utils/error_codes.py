from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes rendered in the API error envelope."""

    E001 = "E001"  # Lookup: Resource not found
    E002 = "E002"  # Validation: Invalid input
    E003 = "E003"  # Referential: Project/reward not eligible
    E004 = "E004"  # Gateway: Card declined
    E005 = "E005"  # Gateway: Unavailable or timed out
    E006 = "E006"  # Gateway: Unexpected gateway error
    E007 = "E007"  # Configuration: Missing gateway configuration
    E008 = "E008"  # Conflict: State conflict
    E009 = "E009"  # Persistence: Storage failure
    E010 = "E010"  # Internal: Internal error


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.E001: "Not found",
    ErrorCode.E002: "Invalid input",
    ErrorCode.E003: "Referenced project or reward is not eligible",
    ErrorCode.E004: "Card declined",
    ErrorCode.E005: "Payment gateway unavailable",
    ErrorCode.E006: "Payment gateway error",
    ErrorCode.E007: "Payment gateway is not configured",
    ErrorCode.E008: "State conflict",
    ErrorCode.E009: "Storage failure",
    ErrorCode.E010: "Internal server error",
}
