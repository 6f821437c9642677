"""Setup configuration for fitsync-cloud-connector."""

from setuptools import setup, find_packages

setup(
    name="fitsync-cloud-connector",
    version="0.1.0",
    description="Fitbit OAuth, credential storage and measurement sources for FitSync",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.11",
    install_requires=[
        "fitsync-core>=0.1.0",
        "httpx>=0.27.0",
        "pydantic>=2.0.0",
        "boto3>=1.34.0",
        "cryptography>=42.0.0",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
            "moto>=5.0.0",  # For mocking AWS Secrets Manager
        ],
    },
    license="MIT",
)
