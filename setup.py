"""Setup script for the ClearMarkup package.

This script installs the ClearMarkup data core and its dependencies.
"""

from __future__ import annotations

import setuptools

# Read the long description from README.md
with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

# Read version from __version__.py
version = {}
with open("clearmarkup/__version__.py", "r", encoding="utf-8") as f:
    exec(f.read(), version)

# Dependencies
install_requires = [
    "pydantic>=2.4.0",
    "pyyaml>=6.0",
    "sqlalchemy>=2.0.0",
    "structlog>=22.1.0",
    "python-json-logger>=2.0.4",
]

# Database drivers for server databases
driver_requires = {
    "postgresql": ["psycopg2-binary>=2.9"],
    "mysql": ["pymysql>=1.0"],
}

# Development dependencies
dev_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=23.1.0",
    "isort>=5.12.0",
    "mypy>=1.0.0",
    "types-pyyaml",
]

setuptools.setup(
    name="clearmarkup",
    version=version.get("__version__", "0.1.0"),
    author="ClearMarkup Team",
    description="A fluent query builder and data-access core over SQLAlchemy",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["clearmarkup", "clearmarkup.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require={
        "dev": dev_requires,
        "test": ["pytest>=7.0.0", "pytest-cov>=4.0.0"],
        **driver_requires,
        "all": dev_requires + [req for reqs in driver_requires.values() for req in reqs],
    },
    include_package_data=True,
    package_data={
        "clearmarkup": ["**/*.yaml", "**/*.yml"],
    },
)
