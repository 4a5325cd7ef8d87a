"""
ECC Version - single source of the ecc-bridge version
"""

__version__ = "0.4.0"


def get_short_banner() -> str:
    """Get a compact version banner."""
    return f"ecc-bridge v{__version__}"
