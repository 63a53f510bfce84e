"""
Vulture whitelist for intentionally unused code.

These are public API elements that are meant to be used by consumers of the module.
"""

# Read characteristic - recorded for reference, the panel is write-only here
from src.idm_protocol import READ_CHAR_UUID

# Click parameter types are invoked by click, not by our code
from src.idm_cli import ColorParamType, PixelParamType

# Suppress vulture warnings
_ = (
    READ_CHAR_UUID,
    ColorParamType.convert,
    PixelParamType.convert,
)
