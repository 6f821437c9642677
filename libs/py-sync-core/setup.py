"""Setup configuration for fitsync-core."""

from setuptools import setup, find_packages

setup(
    name="fitsync-core",
    version="0.1.0",
    description="Statistics and reconciliation engine for weight and body-fat time series",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0.0",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
        ],
    },
    license="MIT",
)
