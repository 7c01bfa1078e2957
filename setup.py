"""Setup for certsync."""

from setuptools import find_packages, setup

setup(
    name="certsync",
    version="0.1.0",
    description="Local-first encrypted certificate store with remote sync",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click>=8.1.0",
        "cryptography>=41.0.0",
        "prometheus-client>=0.19.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "requests>=2.31.0",
        "sqlalchemy>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "certsync=certsync.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
