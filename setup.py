#!/usr/bin/env python
"""
Setup script for vapi-cloner package.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
readme_file = this_directory / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read version from package
version_file = this_directory / "vapi_cloner" / "__version__.py"
version = {}
if version_file.exists():
    exec(version_file.read_text(), version)
    VERSION = version.get("__version__", "1.0.0")
else:
    VERSION = "1.0.0"

setup(
    name="vapi-cloner",
    version=VERSION,
    description="Clone versioned VAPI tool and assistant templates into user accounts",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="VAPI Cloner Team",
    license="MIT",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Telephony",
        "Typing :: Typed",
    ],
    keywords=[
        "vapi",
        "assistant",
        "tool",
        "clone",
        "template",
        "versioning",
        "cli",
        "voice",
    ],
    packages=find_packages(exclude=["tests*", "docs*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.8.0",
        "httpx>=0.27.0",
        "python-dotenv>=1.0.0",
        "typer>=0.9.0",
        "rich>=13.7.0",
        "pydantic-settings>=2.4.0",
        "pyyaml>=6.0",
        "jinja2>=3.1.6",
        "cryptography>=42.0.0",
        "sqlalchemy>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.24.0",
            "pytest-cov>=5.0.0",
        ],
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.24.0",
            "pytest-cov>=5.0.0",
            "black>=24.0.0",
            "ruff>=0.6.0",
            "mypy>=1.11.0",
        ],
        "postgres": [
            "psycopg[binary]>=3.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "vapi-cloner=vapi_cloner.cli.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
