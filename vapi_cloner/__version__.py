"""Version information for vapi-cloner package."""

__version__ = "1.0.0"
__version_info__ = tuple(map(int, __version__.split(".")))

# Package metadata
__title__ = "vapi-cloner"
__description__ = "Clone versioned VAPI tool and assistant templates into user accounts"
__author__ = "VAPI Cloner Team"
__license__ = "MIT"

# Development status
__status__ = "Beta"

# Supported Python versions
__python_requires__ = ">=3.9"
